"""
Configuration Service
Provides the current charge configuration and society header
"""

from decimal import Decimal
from typing import Optional

from core.models.entities import ChargeConfiguration, SocietyInfo
from core.repositories.configuration_repository import ConfigurationRepository, SocietyInfoRepository
from core.services.audit_service import AuditService
from db.record_store import RecordStore
from utils.exceptions import MissingConfigurationException, ValidationException
from utils.helpers import LoggingUtils
from utils.validators import BillingValidator

RATE_FIELDS = (
    'maintenance_charges',
    'sinking_fund',
    'festival_charges',
    'building_maintenance',
    'occupancy_charges',
    'non_occupancy_charges',
    'noc_charges',
    'four_wheeler_rate',
    'three_wheeler_rate',
    'two_wheeler_rate',
)

class ConfigurationService:
    """Configuration provider for the bill generator"""

    def __init__(self, store: RecordStore):
        self.store = store
        self.config_repo = ConfigurationRepository(store)
        self.society_repo = SocietyInfoRepository(store)
        self.audit = AuditService(store)

    def find_charge_configuration(self) -> Optional[ChargeConfiguration]:
        return self.config_repo.get_configuration()

    def get_charge_configuration(self) -> ChargeConfiguration:
        """Current rate table; fails when none has been saved yet"""
        config = self.config_repo.get_configuration()
        if config is None:
            raise MissingConfigurationException("Charge configuration has not been set up")
        return config

    def save_charge_configuration(self, config: ChargeConfiguration, actor: str = 'admin') -> ChargeConfiguration:
        """Validate and replace the rate table"""
        for field_name in RATE_FIELDS:
            BillingValidator.validate_amount(getattr(config, field_name), allow_zero=True,
                                             field_name=field_name.replace('_', ' ').title())
        if not isinstance(config.interest_rate, Decimal) or config.interest_rate < 0:
            raise ValidationException("Interest rate must be a non-negative Decimal")
        BillingValidator.validate_due_day(config.due_day)

        with self.store.transaction():
            saved = self.config_repo.save_configuration(config)
            self.audit.log(actor, 'CONFIG_UPDATE', {name: str(getattr(config, name)) for name in RATE_FIELDS})

        LoggingUtils.log_business_event("configuration_updated", "charge_configuration", "current")
        return saved

    def get_society_info(self) -> Optional[SocietyInfo]:
        return self.society_repo.get_society_info()

    def save_society_info(self, info: SocietyInfo, actor: str = 'admin') -> SocietyInfo:
        if not info.name or len(info.name.strip()) < 2:
            raise ValidationException("Society name is required")
        with self.store.transaction():
            saved = self.society_repo.save_society_info(info)
            self.audit.log(actor, 'SOCIETY_INFO_UPDATE', {'name': info.name})
        return saved
