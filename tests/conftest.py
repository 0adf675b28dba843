import pytest

from config import Settings
from core.broadcaster import Connection
from core.exceptions import ConnectionClosed
from dependencies import build_context


class ManualHandle:
    def __init__(self, deadline, action):
        self.deadline = deadline
        self.action = action
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class ManualScheduler:
    """Deterministic stand-in for the event loop's call_later."""

    def __init__(self):
        self.now = 0
        self.handles = []

    def schedule(self, delay_ms, action):
        handle = ManualHandle(self.now + delay_ms, action)
        self.handles.append(handle)
        return handle

    def pending(self):
        return [h for h in self.handles if not h.cancelled]

    def advance(self, ms):
        target = self.now + ms
        while True:
            due = [h for h in self.pending() if h.deadline <= target]
            if not due:
                break
            handle = min(due, key=lambda h: h.deadline)
            self.handles.remove(handle)
            self.now = handle.deadline
            handle.action()
        self.now = target


class RecordingConnection(Connection):
    def __init__(self, connection_id=None):
        super().__init__(connection_id)
        self.messages = []
        self.closed = False

    def send(self, message):
        if self.closed:
            raise ConnectionClosed(self.id)
        self.messages.append(message)

    def close(self):
        self.closed = True

    def types(self):
        return [m["type"] for m in self.messages]

    def last(self, event_type):
        return [m for m in self.messages if m["type"] == event_type][-1]

    def clear(self):
        self.messages = []


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def ctx(settings, scheduler):
    return build_context(settings, scheduler)


@pytest.fixture
def store(ctx):
    return ctx.store


@pytest.fixture
def broadcaster(ctx):
    return ctx.broadcaster


@pytest.fixture
def queue(ctx):
    return ctx.queue


@pytest.fixture
def action_items(ctx):
    return ctx.action_items


@pytest.fixture
def timers(ctx):
    return ctx.timers


@pytest.fixture
def make_connection():
    def factory(connection_id=None):
        return RecordingConnection(connection_id)
    return factory
