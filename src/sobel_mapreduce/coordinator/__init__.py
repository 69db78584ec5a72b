"""Job orchestration: splitting, phase transitions, assembly and metrics."""
