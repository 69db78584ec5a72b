"""Progress formatting for the command line client."""


def format_duration(seconds: float) -> str:
    """Format duration in seconds to human readable string."""
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes = int(seconds / 60)
    seconds = seconds % 60
    if minutes < 60:
        return f"{minutes}m {seconds:.1f}s"
    hours = int(minutes / 60)
    minutes = minutes % 60
    return f"{hours}h {minutes}m {seconds:.1f}s"


def format_progress_bar(completed: int, total: int, width: int = 40) -> str:
    """Create a progress bar string."""
    percentage = (completed / total) if total > 0 else 0
    filled = int(width * percentage)
    bar = "█" * filled + "░" * (width - filled)
    return f"[{bar}] {percentage:.1%}"


def format_job_progress(job_state) -> str:
    """One status line for a job: phase, bar and task counts."""
    if job_state.phase == "REDUCE":
        completed, total = job_state.completed_reduce_tasks, job_state.num_reduce_tasks
    else:
        completed, total = job_state.completed_map_tasks, job_state.num_map_tasks
    phase = job_state.phase or "SUBMIT"
    return f"{job_state.status:<9} {phase:<6} {format_progress_bar(completed, total)} {completed}/{total}"
