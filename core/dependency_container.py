from typing import Dict, Any, Optional, TypeVar, Callable
from config.app_config import AppConfig
from core.firewall import FirewallReconciler, create_firewall
from core.notifier import GotifyNotifier
from core.protocol import AccountType
from data.sstp_client import SSTPClient
from service.account_service import AccountService
T = TypeVar('T')

class DependencyContainer:
    def __init__(self):
        self._instances: Dict[str, Any] = {}
        self._factories: Dict[str, Callable[[], Any]] = {}
        self._config: Optional[AppConfig] = None

    def register_config(self, config: AppConfig) -> None:
        self._config = config
        self._instances['config'] = config
    def register_singleton(self, name: str, factory: Callable[[], T]) -> None:
        self._factories[name] = factory
    def register_instance(self, name: str, instance: Any) -> None:
        self._instances[name] = instance

    def get(self, name: str) -> T:
        if name in self._instances:
            return self._instances[name]
        if name in self._factories:
            instance = self._factories[name]()
            self._instances[name] = instance
            return instance
        raise KeyError(f"Dependency '{name}' not registered")
    def register_core_dependencies(self) -> None:
        self.register_singleton('firewall', self._create_firewall)
        self.register_singleton('notifier', self._create_notifier)
        self.register_singleton('sstp_client', self._create_sstp_client)
    def register_service_dependencies(self) -> None:
        self.register_singleton('account_service', self._create_account_service)
    def _create_firewall(self) -> FirewallReconciler:
        return create_firewall(self._config.firewall)
    def _create_notifier(self) -> GotifyNotifier:
        return GotifyNotifier(self._config.notification)
    def _create_sstp_client(self) -> SSTPClient:
        return SSTPClient(AccountType.SSTP.backend(self._config))
    def _create_account_service(self) -> AccountService:
        return AccountService(
            self._config,
            firewall=self.get('firewall'),
            notifier=self.get('notifier'),
            sstp_client=self.get('sstp_client')
        )
    def cleanup(self) -> None:
        self._instances.clear()
        self._factories.clear()
        self._config = None
_container = DependencyContainer()
def get_container() -> DependencyContainer:
    return _container
def initialize_container(config: AppConfig) -> None:
    container = get_container()
    container.register_config(config)
    container.register_core_dependencies()
    container.register_service_dependencies()
def get_service(service_name: str) -> Any:
    return get_container().get(service_name)
def cleanup_container() -> None:
    get_container().cleanup()
