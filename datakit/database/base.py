from abc import ABC, abstractmethod


class BaseDatabaseDriver(ABC):
    @abstractmethod
    async def connect(self):
        """Verify the backend is reachable."""
        pass

    @abstractmethod
    async def disconnect(self):
        pass

    @abstractmethod
    async def create_all(self):
        """Create missing tables from the registered model metadata."""
        pass
