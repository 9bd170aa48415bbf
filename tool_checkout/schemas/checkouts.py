from datetime import date, datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict


Department = Literal["elektroinstallation", "wartung_service", "bauleitung", "planung", "lager", "verwaltung"]
ToolCategory = Literal[
    "akkuwerkzeug",
    "elektrowerkzeug",
    "handwerkzeug",
    "messgeraet",
    "pruefgeraet",
    "leiter",
    "kabel_leitungen",
    "sonstiges",
]
ToolCondition = Literal["neu", "sehr_gut", "gut", "gebrauchsspuren", "reparaturbeduerftig", "defekt"]
LocationType = Literal["fahrzeug", "baustelle", "aussenlager", "sonstiges", "werkstatt"]
ReturnCondition = Literal["einwandfrei", "leichte_gebrauchsspuren", "verschmutzt", "beschaedigt", "defekt"]


class CheckoutRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    toolID: str
    employeeID: str
    purpose: Optional[str] = None
    plannedReturnDate: Optional[date] = None
    notes: Optional[str] = None


class ReturnRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    checkoutID: str
    returnedAt: Optional[datetime] = None
    condition: Optional[ReturnCondition] = None
    damage: Optional[str] = None
    notes: Optional[str] = None
    locationID: Optional[str] = None


class EmployeeUpsert(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    firstName: Optional[str] = None
    lastName: Optional[str] = None
    personnelNumber: Optional[str] = None
    department: Optional[Department] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    notes: Optional[str] = None


class ToolUpsert(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    designation: Optional[str] = None
    manufacturer: Optional[str] = None
    modelNumber: Optional[str] = None
    serialNumber: Optional[str] = None
    category: Optional[ToolCategory] = None
    purchaseDate: Optional[date] = None
    purchasePrice: Optional[float] = None
    locationID: Optional[str] = None
    condition: Optional[ToolCondition] = None
    requiresInspection: Optional[bool] = None
    nextInspection: Optional[date] = None
    notes: Optional[str] = None


class LocationUpsert(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: Optional[str] = None
    description: Optional[str] = None
    type: Optional[LocationType] = None


class CheckoutUpsert(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    toolID: Optional[str] = None
    employeeID: Optional[str] = None
    issuedAt: Optional[datetime] = None
    plannedReturnDate: Optional[date] = None
    purpose: Optional[str] = None
    notes: Optional[str] = None


class ReturnUpsert(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    checkoutID: Optional[str] = None
    returnedAt: Optional[datetime] = None
    condition: Optional[ReturnCondition] = None
    damage: Optional[str] = None
    notes: Optional[str] = None
    locationID: Optional[str] = None
