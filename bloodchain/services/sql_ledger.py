"""
Ledger backed by a relational database through SQLAlchemy.

A ledger transaction maps onto one database transaction held in a per-thread
session; commits made outside a transaction run in their own short session.
Inserts rely on the primary key and updates carry a WHERE on the values they
were computed from, so two processes sharing one database cannot both win.
"""
import itertools
import logging
import threading
from contextlib import contextmanager
from typing import Iterator, List, Optional
from uuid import UUID

from pydantic import BaseModel
from sqlalchemy import select, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from bloodchain.core.clock import utcnow
from bloodchain.core.exceptions import ConcurrentUpdate
from bloodchain.database import get_engine, get_session_factory, init_db
from bloodchain.models.blood_request import BloodRequestModel, RequestStatus
from bloodchain.models.donor import BloodGroup, DonorModel
from bloodchain.models.inventory import InventoryRecordModel
from bloodchain.models.scheduled_donation import ScheduledDonationModel
from bloodchain.schemas.blood_request import BloodRequest
from bloodchain.schemas.donation import ScheduledDonation
from bloodchain.schemas.donor import Donor
from bloodchain.schemas.inventory import InventoryRecord
from bloodchain.services.ledger import Ledger, Receipt, donor_guard

logger = logging.getLogger(__name__)


class SqlAlchemyLedger(Ledger):

    def __init__(self, engine: Engine = None, database_url: str = None, create_tables: bool = True):
        self.engine = engine if engine is not None else get_engine(database_url)
        self._session_factory = get_session_factory(self.engine)
        self._local = threading.local()
        self._sequence = itertools.count(1)
        if create_tables:
            init_db(self.engine)

    def _current(self) -> Optional[Session]:
        return getattr(self._local, "session", None)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        if self._current() is not None:
            yield
            return
        session = self._session_factory()
        self._local.session = session
        try:
            yield
            session.commit()
        except BaseException:
            session.rollback()
            raise
        finally:
            self._local.session = None
            session.close()

    @contextmanager
    def _session(self) -> Iterator[Session]:
        session = self._current()
        if session is not None:
            yield session
            session.flush()
            return
        with self._session_factory() as session:
            try:
                yield session
                session.commit()
            except BaseException:
                session.rollback()
                raise

    def _receipt(self, operation: str, entity_id: str) -> Receipt:
        return Receipt(
            operation=operation,
            entity_id=entity_id,
            sequence=next(self._sequence),
            committed_at=utcnow(),
        )

    def _insert(self, session: Session, row, entity: str, key) -> None:
        session.add(row)
        try:
            session.flush()
        except IntegrityError as e:
            logger.warning(f"Insert of {entity} {key} refused: {e.orig}")
            raise ConcurrentUpdate(entity, key) from e

    def _update(self, session: Session, model, snapshot: BaseModel, where: dict, entity: str, key) -> None:
        """UPDATE ... WHERE primary key and ``where`` still hold; exactly one row must change."""
        stmt = (
            update(model)
            .where(*[getattr(model, column) == value for column, value in where.items()])
            .values(**snapshot.model_dump())
            .execution_options(synchronize_session=False)
        )
        if session.execute(stmt).rowcount != 1:
            logger.warning(f"Guarded update of {entity} {key} matched no row")
            raise ConcurrentUpdate(entity, key)

    def _read_stmt(self, stmt):
        stmt = stmt.execution_options(populate_existing=True)
        if self._current() is not None:
            # Row lock for the rest of the transaction (no-op on SQLite)
            stmt = stmt.with_for_update()
        return stmt

    # Commits

    def commit_donor_registration(self, donor: Donor) -> Receipt:
        with self._session() as session:
            self._insert(session, DonorModel(**donor.model_dump()), "donor", donor.identity)
        return self._receipt("donor_registration", donor.identity)

    def commit_donor_update(self, donor: Donor, previous: Donor) -> Receipt:
        with self._session() as session:
            self._update(
                session, DonorModel, donor,
                {"identity": donor.identity, **donor_guard(previous)}, "donor", donor.identity,
            )
        return self._receipt("donor_update", donor.identity)

    def commit_scheduled_donation(self, donation: ScheduledDonation) -> Receipt:
        with self._session() as session:
            self._insert(
                session, ScheduledDonationModel(**donation.model_dump()), "scheduled_donation", donation.key
            )
        return self._receipt("scheduled_donation", donation.key)

    def commit_completion(self, donation: ScheduledDonation, donor: Donor, previous: Donor) -> Receipt:
        with self.transaction(), self._session() as session:
            self._update(
                session, ScheduledDonationModel, donation,
                {"donor": donation.donor, "id": donation.id, "completed": False},
                "scheduled_donation", donation.key,
            )
            self._update(
                session, DonorModel, donor,
                {"identity": donor.identity, **donor_guard(previous)}, "donor", donor.identity,
            )
        return self._receipt("completion", donation.key)

    def commit_inventory_adjustment(self, record: InventoryRecord, previous_units: Optional[int]) -> Receipt:
        with self._session() as session:
            if previous_units is None:
                self._insert(session, InventoryRecordModel(**record.model_dump()), "inventory", record.key)
            else:
                self._update(
                    session, InventoryRecordModel, record,
                    {"hospital": record.hospital, "blood_group": record.blood_group, "units": previous_units},
                    "inventory", record.key,
                )
        return self._receipt("inventory_adjustment", record.key)

    def commit_request_transition(
        self, request: BloodRequest, previous_status: Optional[RequestStatus]
    ) -> Receipt:
        with self._session() as session:
            if previous_status is None:
                self._insert(session, BloodRequestModel(**request.model_dump()), "request", request.id)
            else:
                self._update(
                    session, BloodRequestModel, request,
                    {"id": request.id, "status": previous_status}, "request", request.id,
                )
        return self._receipt("request_transition", str(request.id))

    # Queries

    def query_donor(self, identity: str) -> Optional[Donor]:
        with self._session() as session:
            row = session.scalars(
                self._read_stmt(select(DonorModel).where(DonorModel.identity == identity))
            ).first()
            return Donor.model_validate(row) if row else None

    def query_scheduled_donation(self, donor: str, donation_id: int) -> Optional[ScheduledDonation]:
        with self._session() as session:
            row = session.scalars(self._read_stmt(
                select(ScheduledDonationModel).where(
                    ScheduledDonationModel.donor == donor,
                    ScheduledDonationModel.id == donation_id,
                )
            )).first()
            return ScheduledDonation.model_validate(row) if row else None

    def query_scheduled_donations(self, donor: str) -> List[ScheduledDonation]:
        with self._session() as session:
            rows = session.scalars(
                select(ScheduledDonationModel)
                .where(ScheduledDonationModel.donor == donor)
                .order_by(ScheduledDonationModel.id.asc())
                .execution_options(populate_existing=True)
            ).all()
            return [ScheduledDonation.model_validate(row) for row in rows]

    def query_inventory(self, hospital: str, blood_group: BloodGroup) -> Optional[InventoryRecord]:
        with self._session() as session:
            row = session.scalars(self._read_stmt(
                select(InventoryRecordModel).where(
                    InventoryRecordModel.hospital == hospital,
                    InventoryRecordModel.blood_group == blood_group,
                )
            )).first()
            return InventoryRecord.model_validate(row) if row else None

    def query_hospital_inventory(self, hospital: str) -> List[InventoryRecord]:
        with self._session() as session:
            rows = session.scalars(
                select(InventoryRecordModel)
                .where(InventoryRecordModel.hospital == hospital)
                .execution_options(populate_existing=True)
            ).all()
            return [InventoryRecord.model_validate(row) for row in rows]

    def query_request(self, request_id: UUID) -> Optional[BloodRequest]:
        with self._session() as session:
            row = session.scalars(
                self._read_stmt(select(BloodRequestModel).where(BloodRequestModel.id == request_id))
            ).first()
            return BloodRequest.model_validate(row) if row else None

    def query_requests(
        self,
        recipient: Optional[str] = None,
        hospital: Optional[str] = None,
        status: Optional[RequestStatus] = None,
    ) -> List[BloodRequest]:
        stmt = select(BloodRequestModel)
        if recipient is not None:
            stmt = stmt.where(BloodRequestModel.recipient == recipient)
        if hospital is not None:
            stmt = stmt.where(BloodRequestModel.hospital == hospital)
        if status is not None:
            stmt = stmt.where(BloodRequestModel.status == status)
        stmt = stmt.order_by(BloodRequestModel.created_at.desc()).execution_options(populate_existing=True)
        with self._session() as session:
            return [BloodRequest.model_validate(row) for row in session.scalars(stmt).all()]
