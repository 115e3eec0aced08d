from .watch_mocks import FakeBackendFactory, FakeWatchBackend

__all__ = ["FakeBackendFactory", "FakeWatchBackend"]
