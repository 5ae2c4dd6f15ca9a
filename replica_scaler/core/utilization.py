from typing import Optional

from replica_scaler.domain.rawSample import RawSample


def cpu_percent(previous: Optional[RawSample], current: RawSample) -> float:
    """
    CPU usage between two readings, scaled by the number of online CPUs.

    Returns 0.0 on the first reading of a container and whenever either counter
    did not move forward (counter reset, clock skew).
    """
    if previous is None:
        return 0.0

    # change for the container's cpu usage in between readings
    cpu_delta = current.cpu_usage - previous.cpu_usage
    # change for the entire system between readings
    system_delta = current.system_usage - previous.system_usage

    if system_delta > 0.0 and cpu_delta > 0.0:
        return (cpu_delta / system_delta) * current.online_cpus * 100.0
    return 0.0


def memory_percent(sample: RawSample) -> float:
    if sample.memory_limit <= 0.0 or sample.memory_usage <= 0.0:
        return 0.0
    return sample.memory_usage / sample.memory_limit * 100.0
