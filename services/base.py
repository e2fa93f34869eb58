"""Base services container for dependency injection."""

from config import Config
from db.manager import DatabaseManager


class Services:
    """Container for all application services.

    This class provides a centralized way to access all services and makes
    it easy to inject mock services for testing. Every coordinator created
    through the container shares one event bus, so a write made in one
    session schedules a refresh in the others.

    Args:
        config: Application configuration object.
        db_manager: Optional database manager for testing. If provided, config is ignored.
    """

    def __init__(self, config: Config, db_manager=None):
        """Initialize services with configuration.

        Args:
            config: Config object containing application configuration.
            db_manager: Optional database manager for dependency injection (testing).
                       If None, creates DatabaseManager from config.
        """
        self.config = config
        self.db_manager = db_manager or DatabaseManager(config)

        # Lazy import to avoid circular dependencies
        from hierarchy.events import CategoryEventBus
        from services.audios import AudioService
        from services.categories import CategoryService

        self.categories = CategoryService(self.db_manager)
        self.audios = AudioService(self.db_manager)
        self.event_bus = CategoryEventBus()

    def create_coordinator(self, fetch: bool = True):
        """Create a category coordinator for one session.

        Args:
            fetch: Load the category snapshot before returning.

        Returns:
            CategoryCoordinator bound to the category store and the shared event bus.
        """
        from hierarchy.coordinator import CategoryCoordinator

        coordinator = CategoryCoordinator.from_config(
            self.config, self.categories, event_bus=self.event_bus
        )
        if fetch:
            coordinator.fetch_categories()
        return coordinator
