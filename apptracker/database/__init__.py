# Database package
from .connection import init_db, SessionLocal, db_session, engine
from .models import (
    Base, ProviderCredential, Application, ApplicationProvider, Deployment,
    MaintenanceCommandType, MaintenanceRun, MaintenanceStatusItem,
)
from .repositories import (
    CredentialRepository, ApplicationRepository,
    DeploymentRepository, MaintenanceRepository,
)

__all__ = [
    'init_db', 'SessionLocal', 'db_session', 'engine',
    'Base', 'ProviderCredential', 'Application', 'ApplicationProvider', 'Deployment',
    'MaintenanceCommandType', 'MaintenanceRun', 'MaintenanceStatusItem',
    'CredentialRepository', 'ApplicationRepository',
    'DeploymentRepository', 'MaintenanceRepository',
]
