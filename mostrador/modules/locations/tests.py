"""
Tests para el módulo de Locales
"""

import pytest
from uuid import uuid4

from mostrador.common.exceptions import LocationNotFound, ValidationError
from mostrador.modules.locations import service
from mostrador.modules.locations.schemas import LocationCreate


class TestLocationService:
    def test_create_and_get(self, db_session):
        location = service.create_location(LocationCreate(name="Sucursal Oeste", is_main=True), db_session)
        assert service.get_location_by_id(location.id, db_session).name == "Sucursal Oeste"

    def test_duplicate_name(self, db_session):
        service.create_location(LocationCreate(name="Sucursal Oeste"), db_session)
        with pytest.raises(ValidationError):
            service.create_location(LocationCreate(name="Sucursal Oeste"), db_session)

    def test_inactive_only_when_requested(self, db_session, make_location):
        closed_branch = make_location("Sucursal Cerrada", is_active=False)
        assert service.get_location_by_id(closed_branch.id, db_session).id == closed_branch.id
        with pytest.raises(LocationNotFound):
            service.get_location_by_id(closed_branch.id, db_session, active_only=True)
        with pytest.raises(LocationNotFound):
            service.get_location_by_id(uuid4(), db_session)


class TestLocationEndpoints:
    def test_list(self, client, cashier_headers, make_location):
        make_location("Depósito")
        response = client.get("/api/v1/locations/", headers=cashier_headers)
        assert response.status_code == 200
        assert response.json()["total"] == 2
