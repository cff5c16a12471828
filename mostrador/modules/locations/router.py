from fastapi import APIRouter, Depends, status, Query
from sqlalchemy.orm import Session
from uuid import UUID

from mostrador.database.database import get_db
from mostrador.modules.locations import service
from mostrador.modules.locations.schemas import LocationCreate, LocationOutput, LocationList

location_router = APIRouter(prefix="/locations", tags=["Locations"])

@location_router.post("/", response_model=LocationOutput, status_code=status.HTTP_201_CREATED)
def create_location(
    location: LocationCreate,
    db: Session = Depends(get_db)
):
    """
    Crear nuevo local (punto de venta o depósito).
    """
    return service.create_location(location, db)

@location_router.get("/", response_model=LocationList)
def get_all_locations(
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db)
):
    """
    Obtener lista de locales.
    """
    return service.get_all_locations(db, limit, offset)

@location_router.get("/{location_id}", response_model=LocationOutput)
def get_location_by_id(
    location_id: UUID,
    db: Session = Depends(get_db)
):
    return service.get_location_by_id(location_id, db)
