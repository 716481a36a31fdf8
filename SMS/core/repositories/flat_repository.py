"""
Flat Repository
Handles storage of the flats collection
"""

from typing import Optional, List
from datetime import datetime

from core.repositories.base_repository import BaseRepository
from core.models.entities import Flat, OccupancyStatus, ParkingSlots
from db.record_store import RecordStore
from utils.exceptions import ValidationException
from utils.helpers import NumberUtils

class FlatRepository(BaseRepository):
    """Repository for flats collection operations"""

    def __init__(self, store: RecordStore):
        super().__init__(store, 'flats', 'flat_number')

    def create_flat(self, flat: Flat) -> str:
        """Create a new flat"""
        if not flat.flat_number:
            raise ValidationException("Flat number is required")

        return self.create(self._flat_to_dict(flat))

    def find_flat(self, flat_number: str) -> Optional[Flat]:
        """Find flat by flat number"""
        flat_data = self.find_by_id(flat_number)
        if not flat_data:
            return None

        return self._dict_to_flat(flat_data)

    def get_all_flats(self) -> List[Flat]:
        """All flats ordered by flat number"""
        flats = [self._dict_to_flat(row) for row in self.find_all()]
        return sorted(flats, key=lambda flat: flat.flat_number)

    def save_flat(self, flat: Flat) -> bool:
        """Overwrite an existing flat"""
        return self.update(flat.flat_number, self._flat_to_dict(flat))

    def _flat_to_dict(self, flat: Flat) -> dict:
        return {
            'flat_number': flat.flat_number,
            'owner_name': flat.owner_name,
            'mobile': flat.mobile,
            'status': flat.status.value,
            'parking': {
                'four_wheeler': flat.parking.four_wheeler,
                'three_wheeler': flat.parking.three_wheeler,
                'two_wheeler': flat.parking.two_wheeler,
            },
            'legacy_outstanding': self._money(flat.legacy_outstanding),
            'created_at': self._date_to_str(flat.created_at or datetime.now()),
        }

    def _dict_to_flat(self, flat_data: dict) -> Flat:
        """Convert dictionary to Flat object"""
        parking = flat_data.get('parking') or {}
        return Flat(
            flat_number=flat_data['flat_number'],
            owner_name=flat_data.get('owner_name', ''),
            mobile=flat_data.get('mobile'),
            status=OccupancyStatus(flat_data.get('status', 'owner')),
            parking=ParkingSlots(
                four_wheeler=int(parking.get('four_wheeler', 0)),
                three_wheeler=int(parking.get('three_wheeler', 0)),
                two_wheeler=int(parking.get('two_wheeler', 0)),
            ),
            legacy_outstanding=NumberUtils.to_decimal(flat_data.get('legacy_outstanding')),
            created_at=self._str_to_datetime(flat_data.get('created_at')),
        )
