"""
Flat Service
Business logic for flat intake and updates
"""

from decimal import Decimal
from datetime import datetime
from typing import List, Dict, Any, Optional

from core.models.entities import Flat, OccupancyStatus, ParkingSlots
from core.repositories.flat_repository import FlatRepository
from core.repositories.bill_repository import BillRepository
from core.repositories.allocation_repository import AllocationRepository
from core.services.audit_service import AuditService
from db.record_store import RecordStore
from utils.exceptions import ValidationException, FlatNotFoundException
from utils.helpers import LoggingUtils, NumberUtils, StringUtils
from utils.validators import BillingValidator

class FlatService:
    """Service class for flat management operations"""

    def __init__(self, store: RecordStore):
        self.store = store
        self.flat_repo = FlatRepository(store)
        self.bill_repo = BillRepository(store)
        self.allocation_repo = AllocationRepository(store)
        self.audit = AuditService(store)

    def register_flat(self, flat_number: str, owner_name: str, status: OccupancyStatus = OccupancyStatus.OWNER,
                      mobile: str = None, parking: ParkingSlots = None,
                      legacy_outstanding: Decimal = Decimal('0.00'), actor: str = 'admin') -> Flat:
        """Create a flat; legacy dues can only be set here"""
        flat_number = StringUtils.clean_string(flat_number)
        BillingValidator.validate_flat_number(flat_number)
        BillingValidator.validate_name(owner_name, "Owner name")
        BillingValidator.validate_mobile(mobile)
        BillingValidator.validate_amount(legacy_outstanding, allow_zero=True, field_name="Legacy outstanding")
        parking = parking or ParkingSlots()
        self._validate_parking(parking)

        if self.flat_repo.exists(flat_number):
            raise ValidationException(f"Flat {flat_number} already exists", flat_number=flat_number)

        flat = Flat(
            flat_number=flat_number,
            owner_name=StringUtils.clean_string(owner_name),
            mobile=mobile,
            status=status,
            parking=parking,
            legacy_outstanding=NumberUtils.round_currency(legacy_outstanding),
            created_at=datetime.now(),
        )

        with self.store.transaction():
            self.flat_repo.create_flat(flat)
            self.audit.log(actor, 'FLAT_CREATE', {'flat_number': flat_number, 'status': status.value,
                                                  'legacy_outstanding': str(flat.legacy_outstanding)})

        LoggingUtils.log_business_event("flat_registered", "flat", flat_number, flat_number=flat_number)
        return flat

    def update_flat(self, flat_number: str, owner_name: str = None, mobile: str = None,
                    status: OccupancyStatus = None, parking: ParkingSlots = None,
                    actor: str = 'admin') -> Flat:
        """Change owner details, tenancy status or parking; the flat number is fixed"""
        flat = self.get_flat(flat_number)

        if owner_name is not None:
            BillingValidator.validate_name(owner_name, "Owner name")
            flat.owner_name = StringUtils.clean_string(owner_name)
        if mobile is not None:
            BillingValidator.validate_mobile(mobile)
            flat.mobile = mobile
        if status is not None:
            flat.status = status
        if parking is not None:
            self._validate_parking(parking)
            flat.parking = parking

        with self.store.transaction():
            self.flat_repo.save_flat(flat)
            self.audit.log(actor, 'FLAT_UPDATE', {'flat_number': flat_number, 'status': flat.status.value})

        return flat

    def get_flat(self, flat_number: str) -> Flat:
        flat = self.flat_repo.find_flat(flat_number)
        if not flat:
            raise FlatNotFoundException(f"Flat {flat_number} not found", flat_number=flat_number)
        return flat

    def find_flat(self, flat_number: str) -> Optional[Flat]:
        return self.flat_repo.find_flat(flat_number)

    def list_flats(self) -> List[Flat]:
        return self.flat_repo.get_all_flats()

    def import_member_outstanding(self, records: List[Dict[str, Any]], actor: str = 'admin') -> int:
        """
        Set opening legacy dues from a member-outstanding list
        (``[{'flat_number': '101', 'amount': '1500'}]``).

        Only flats with no bills and no legacy payments yet are updated; the
        whole list is rejected otherwise so nothing partially applies.
        """
        updates = []
        for record in records:
            flat = self.get_flat(str(record.get('flat_number', '')))
            amount = NumberUtils.to_decimal(record.get('amount'))
            BillingValidator.validate_amount(amount, allow_zero=True, field_name="Outstanding amount")
            if self.bill_repo.find_by_flat(flat.flat_number) or self.allocation_repo.find_by_flat(flat.flat_number):
                raise ValidationException(
                    f"Flat {flat.flat_number} already has billing history; legacy dues can only be set at intake",
                    flat_number=flat.flat_number
                )
            flat.legacy_outstanding = NumberUtils.round_currency(amount)
            updates.append(flat)

        with self.store.transaction():
            for flat in updates:
                self.flat_repo.save_flat(flat)
            self.audit.log(actor, 'MEMBER_OUTSTANDING_IMPORT', {'flats': [f.flat_number for f in updates]})

        LoggingUtils.log_business_event("member_outstanding_imported", "flat", None,
                                        details={'count': len(updates)})
        return len(updates)

    def _validate_parking(self, parking: ParkingSlots):
        BillingValidator.validate_slot_count(parking.four_wheeler, "Four wheeler slots")
        BillingValidator.validate_slot_count(parking.three_wheeler, "Three wheeler slots")
        BillingValidator.validate_slot_count(parking.two_wheeler, "Two wheeler slots")
