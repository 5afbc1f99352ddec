import time


class Timer:
    def __init__(self):
        self.wall_start_time = 0
        self.wall_end_time = 0

    def start(self):
        now = time.monotonic()
        if not self.wall_start_time:
            self.wall_start_time = now

    def end(self):
        self.wall_end_time = time.monotonic()

    @property
    def wall_time(self):
        return self.wall_end_time - self.wall_start_time

    def __enter__(self) -> "Timer":
        self.start()
        return self

    def __exit__(self, *args):
        self.end()
