"""
Configuration Repository
Singleton records: the charge configuration and the society header
"""

from typing import Optional
from datetime import datetime

from core.repositories.base_repository import BaseRepository
from core.models.entities import ChargeConfiguration, SocietyInfo
from db.record_store import RecordStore
from utils.helpers import NumberUtils

CONFIG_KEY = 'current'

class ConfigurationRepository(BaseRepository):
    """Repository for the charge_configuration collection"""

    def __init__(self, store: RecordStore):
        super().__init__(store, 'charge_configuration', 'key')

    def get_configuration(self) -> Optional[ChargeConfiguration]:
        config_data = self.find_by_id(CONFIG_KEY)
        if not config_data:
            return None

        return self._dict_to_configuration(config_data)

    def save_configuration(self, config: ChargeConfiguration) -> ChargeConfiguration:
        """Replace the current rate table"""
        config.last_updated = datetime.now()
        self.store.save(self.collection, [self._configuration_to_dict(config)])
        return config

    def _configuration_to_dict(self, config: ChargeConfiguration) -> dict:
        return {
            'key': CONFIG_KEY,
            'maintenance_charges': self._money(config.maintenance_charges),
            'sinking_fund': self._money(config.sinking_fund),
            'festival_charges': self._money(config.festival_charges),
            'building_maintenance': self._money(config.building_maintenance),
            'occupancy_charges': self._money(config.occupancy_charges),
            'non_occupancy_charges': self._money(config.non_occupancy_charges),
            'noc_charges': self._money(config.noc_charges),
            'four_wheeler_rate': self._money(config.four_wheeler_rate),
            'three_wheeler_rate': self._money(config.three_wheeler_rate),
            'two_wheeler_rate': self._money(config.two_wheeler_rate),
            'interest_rate': str(config.interest_rate),
            'due_day': config.due_day,
            'last_updated': self._date_to_str(config.last_updated),
        }

    def _dict_to_configuration(self, data: dict) -> ChargeConfiguration:
        """Convert dictionary to ChargeConfiguration object"""
        money = NumberUtils.to_decimal
        return ChargeConfiguration(
            maintenance_charges=money(data.get('maintenance_charges')),
            sinking_fund=money(data.get('sinking_fund')),
            festival_charges=money(data.get('festival_charges')),
            building_maintenance=money(data.get('building_maintenance')),
            occupancy_charges=money(data.get('occupancy_charges')),
            non_occupancy_charges=money(data.get('non_occupancy_charges')),
            noc_charges=money(data.get('noc_charges')),
            four_wheeler_rate=money(data.get('four_wheeler_rate', '100.00')),
            three_wheeler_rate=money(data.get('three_wheeler_rate', '100.00')),
            two_wheeler_rate=money(data.get('two_wheeler_rate', '50.00')),
            interest_rate=money(data.get('interest_rate')),
            due_day=int(data.get('due_day', 10)),
            last_updated=self._str_to_datetime(data.get('last_updated')),
        )

class SocietyInfoRepository(BaseRepository):
    """Repository for the society_info collection"""

    def __init__(self, store: RecordStore):
        super().__init__(store, 'society_info', 'key')

    def get_society_info(self) -> Optional[SocietyInfo]:
        data = self.find_by_id(CONFIG_KEY)
        if not data:
            return None
        return SocietyInfo(
            name=data.get('name', ''),
            registration_number=data.get('registration_number'),
            address=data.get('address'),
            contact_email=data.get('contact_email'),
            contact_phone=data.get('contact_phone'),
            updated_at=self._str_to_datetime(data.get('updated_at')),
        )

    def save_society_info(self, info: SocietyInfo) -> SocietyInfo:
        info.updated_at = datetime.now()
        self.store.save(self.collection, [{
            'key': CONFIG_KEY,
            'name': info.name,
            'registration_number': info.registration_number,
            'address': info.address,
            'contact_email': info.contact_email,
            'contact_phone': info.contact_phone,
            'updated_at': self._date_to_str(info.updated_at),
        }])
        return info
