from sqlalchemy.orm import Session
from uuid import UUID
from mostrador.common.exceptions import LocationNotFound, ValidationError
from mostrador.modules.locations.models import Location
from mostrador.modules.locations.schemas import LocationCreate

def create_location(location: LocationCreate, db: Session):
    existing = db.query(Location).filter(Location.name == location.name).first()
    if existing:
        raise ValidationError(
            f"Ya existe un local con el nombre '{location.name}'",
            details={"name": location.name}
        )

    new_location = Location(**location.model_dump())
    db.add(new_location)
    db.commit()
    db.refresh(new_location)
    return new_location


def get_all_locations(db: Session, limit: int = 100, offset: int = 0):
    query = db.query(Location)
    total = query.count()
    locations = query.order_by(Location.name).offset(offset).limit(limit).all()
    return {"locations": locations, "total": total, "limit": limit, "offset": offset}


def get_location_by_id(location_id: UUID, db: Session, active_only: bool = False) -> Location:
    query = db.query(Location).filter(Location.id == location_id)
    if active_only:
        query = query.filter(Location.is_active == True)
    location = query.first()

    if not location:
        raise LocationNotFound(
            f"Local {location_id} no encontrado" + (" o inactivo" if active_only else ""),
            details={"location_id": str(location_id)}
        )
    return location
