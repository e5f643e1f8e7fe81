# module ticketing.registrations.models
"""
Types du domaine « inscriptions ».
- Statuts (inscription / paiement) et codes de refus d'éligibilité
- ParticipantData / RegistrationData: instantané des données saisies, stocké dans registration_data
- GuardResult / StoreResult / ServiceResponse: résultats neutres échangés entre couches
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

class RegistrationStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"

class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"

class GuardCode(str, Enum):
    EVENT_NOT_FOUND = "EVENT_NOT_FOUND"
    CATEGORY_NOT_FOUND = "CATEGORY_NOT_FOUND"
    REGISTRATION_NOT_ALLOWED = "REGISTRATION_NOT_ALLOWED"
    REGISTRATION_NOT_OPEN = "REGISTRATION_NOT_OPEN"
    REGISTRATION_CLOSED = "REGISTRATION_CLOSED"
    ALREADY_REGISTERED = "ALREADY_REGISTERED"
    PAIR_NOT_ALLOWED = "PAIR_NOT_ALLOWED"
    CATEGORY_FULL = "CATEGORY_FULL"
    EVENT_FULL = "EVENT_FULL"
    INSUFFICIENT_CAPACITY_FOR_PAIR = "INSUFFICIENT_CAPACITY_FOR_PAIR"

CAPACITY_CODES = {
    GuardCode.CATEGORY_FULL.value,
    GuardCode.EVENT_FULL.value,
    GuardCode.INSUFFICIENT_CAPACITY_FOR_PAIR.value,
}

ALLOWED_SHIRT_SIZES = ("P", "M", "G", "GG", "XG")
VALID_SHIRT_GENDERS = ("masculino", "feminino", "infantil")

class ParticipantData(BaseModel):
    """Données d'un participant (titulaire ou partenaire), clés camelCase côté stockage."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str
    email: str
    cpf: str
    phone: str
    shirt_size: str = Field(alias="shirtSize")
    shirt_gender: Optional[str] = Field(default=None, alias="shirtGender")

    def to_storage(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)

class RegistrationData(BaseModel):
    user: Optional[ParticipantData] = None
    partner: Optional[ParticipantData] = None

    def to_storage(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if self.user is not None:
            data["user"] = self.user.to_storage()
        if self.partner is not None:
            data["partner"] = self.partner.to_storage()
        return data

@dataclass
class GuardResult:
    valid: bool
    error: Optional[str] = None
    error_code: Optional[str] = None

    @classmethod
    def ok(cls) -> "GuardResult":
        return cls(True)

    @classmethod
    def refuse(cls, code: GuardCode, message: str) -> "GuardResult":
        return cls(False, message, code.value)

@dataclass
class StoreResult:
    """
    Résultat d'une opération du store.
    - data: ligne lue/écrite (ou None)
    - error: message d'erreur (None si succès)
    - changed: True seulement si CET appel a effectivement modifié l'état
    - code: code métier optionnel (ex: CATEGORY_FULL lors de la réservation)
    """
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    changed: bool = False
    code: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

@dataclass
class ServiceResponse:
    status_code: int
    body: Dict[str, Any] = field(default_factory=dict)

class CheckoutError(Exception):
    """Refus métier d'un checkout, converti en ServiceResponse à la frontière du service."""
    def __init__(self, message: str, status_code: int = 400, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code

    def to_response(self) -> ServiceResponse:
        body: Dict[str, Any] = {"error": self.message}
        if self.code:
            body["code"] = self.code
        return ServiceResponse(self.status_code, body)

GENERIC_ERROR = "Erro ao processar sua solicitação. Tente novamente."

def capacity_units(is_pair: bool) -> int:
    return 2 if is_pair else 1
