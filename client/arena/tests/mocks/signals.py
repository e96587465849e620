from arena.logic.integrity import IntegrityMonitor


class FakeClock:
    """Manually advanced wall clock in epoch milliseconds."""

    def __init__(self, start_ms: float = 1_700_000_000_000) -> None:
        self.now_ms = start_ms

    def __call__(self) -> float:
        return self.now_ms

    def advance(self, seconds: float) -> None:
        self.now_ms += seconds * 1000


class FakeSignalSource:
    """Signal source that only records attach/detach calls."""

    def __init__(self) -> None:
        self.attached: list[IntegrityMonitor] = []
        self.attach_calls = 0
        self.detach_calls = 0

    def attach(self, monitor: IntegrityMonitor) -> None:
        self.attach_calls += 1
        self.attached.append(monitor)

    def detach(self, monitor: IntegrityMonitor) -> None:
        self.detach_calls += 1
        if monitor in self.attached:
            self.attached.remove(monitor)
