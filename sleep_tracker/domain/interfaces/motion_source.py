"""Device motion source interface."""

from typing import Callable, Protocol, runtime_checkable

from ..entities.events import AccelerationReading

MotionHandler = Callable[[AccelerationReading], None]


@runtime_checkable
class MotionSource(Protocol):
    """Protocol for platform event streams delivering 3-axis acceleration.
    
    Some platforms require an explicit asynchronous permission grant
    before events flow.
    """
    
    requires_permission: bool
    
    async def request_permission(self) -> bool:
        """Ask the platform for motion access.
        
        Returns:
            bool: True if access was granted.
        """
        ...
    
    def subscribe(self, handler: MotionHandler) -> None:
        """Register a handler invoked on every raw motion event."""
        ...
    
    def unsubscribe(self, handler: MotionHandler) -> None:
        """Remove a previously registered handler."""
        ...
