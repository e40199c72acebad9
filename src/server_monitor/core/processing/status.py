HEALTHY = "healthy"
WARNING = "warning"
CRITICAL = "critical"

CPU_CRITICAL_PERCENT = 90.0
CPU_WARNING_PERCENT = 70.0
MEMORY_CRITICAL_PERCENT = 90.0
MEMORY_WARNING_PERCENT = 80.0


def calculate_status(cpu_percent: float, memory_percent: float) -> str:
    """Overall server status from CPU and memory usage."""
    if cpu_percent > CPU_CRITICAL_PERCENT or memory_percent > MEMORY_CRITICAL_PERCENT:
        return CRITICAL
    if cpu_percent > CPU_WARNING_PERCENT or memory_percent > MEMORY_WARNING_PERCENT:
        return WARNING
    return HEALTHY
