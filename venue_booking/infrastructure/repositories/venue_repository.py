# venue_booking/infrastructure/repositories/venue_repository.py

from sqlalchemy.orm import Session
from sqlalchemy import select

from venue_booking.application.ports import PackageCatalog
from venue_booking.domain.exceptions import NotFoundError
from venue_booking.domain.pricing import VenuePackageTemplate
from venue_booking.infrastructure.db.models import Venue


class VenueRepository(PackageCatalog):

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, venue_id: str) -> Venue | None:
        stmt = select(Venue).where(Venue.id == venue_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def lock_venue(self, venue_id: str) -> Venue:
        """
        SELECT ... FOR UPDATE
        Serializes slot checks and inserts for one venue.
        """

        stmt = (
            select(Venue)
            .where(Venue.id == venue_id)
            .with_for_update()
        )

        venue = self.db.execute(stmt).scalar_one_or_none()

        if not venue:
            raise NotFoundError("Venue", venue_id)

        return venue

    def get_venue_package_template(
        self,
        venue_id: str,
        package_id: str,
    ) -> VenuePackageTemplate | None:
        venue = self.get_by_id(venue_id)
        if not venue:
            return None

        for document in venue.food_packages or []:
            if str(document.get("id")) == str(package_id):
                return VenuePackageTemplate.from_document(document)
        return None
