"""
api/routes/v1/settings.py -- Per-user robot settings.

Routes:
  GET  /api/v1/settings                   -- every settings document the caller stored
  GET  /api/v1/settings/{serial_number}   -- the caller's document for one robot
  POST /api/v1/settings/{serial_number}   -- save the caller's document (owner or grant)

A user only ever reads and writes their own row; there is no route that
exposes another user's settings.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.models import SettingsResponse, SettingsSave, SettingsSummaryRow
from auth.dependencies import get_current_user
from auth.models import User
from fleet.service import FleetService

# Auth policy:
# - every route requires auth (get_current_user)
router = APIRouter()


@router.get("/settings", response_model=list[SettingsSummaryRow])
def list_my_settings(request: Request, current_user: User = Depends(get_current_user)) -> list[SettingsSummaryRow]:
    fleet: FleetService = request.app.state.fleet
    return [SettingsSummaryRow(**row) for row in fleet.list_my_settings(current_user.id)]


@router.get("/settings/{serial_number}", response_model=SettingsResponse)
def get_settings(
    request: Request,
    serial_number: str,
    current_user: User = Depends(get_current_user),
) -> SettingsResponse:
    fleet: FleetService = request.app.state.fleet
    return SettingsResponse.from_settings(fleet.get_settings(current_user.id, serial_number))


@router.post("/settings/{serial_number}", response_model=SettingsResponse)
def save_settings(
    request: Request,
    serial_number: str,
    body: SettingsSave,
    current_user: User = Depends(get_current_user),
) -> SettingsResponse:
    fleet: FleetService = request.app.state.fleet
    return SettingsResponse.from_settings(fleet.save_settings(current_user.id, serial_number, body.settings))
