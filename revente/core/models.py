from __future__ import annotations
from dataclasses import dataclass, asdict
from decimal import Decimal
from typing import Optional, List

from pydantic import BaseModel, ConfigDict, Field, field_validator

from revente.utils.money import ZERO, parse_money, parse_quantity

# —— Statuts produit —— #
STATUS_TO_CLEAN = "À nettoyer"
STATUS_WAITING_PHOTO = "En attente de photo"
STATUS_ONLINE = "En ligne"
STATUS_SOLD = "Vendu"
STATUS_SHIPPED = "Expédié"
STATUS_RETURNED = "Retour"
STATUS_ARCHIVED = "Archivé"

PRODUCT_STATUSES = (
    STATUS_TO_CLEAN, STATUS_WAITING_PHOTO, STATUS_ONLINE, STATUS_SOLD,
    STATUS_SHIPPED, STATUS_RETURNED, STATUS_ARCHIVED,
)
IN_STOCK_STATUSES = (STATUS_TO_CLEAN, STATUS_WAITING_PHOTO, STATUS_ONLINE)
DEFAULT_STATUS = STATUS_ONLINE

MONEY_FIELDS = ("prix_achat", "prix_vente", "frais", "frais_port",
                "commission_plateforme", "frais_emballage", "frais_annexes")
FEE_FIELDS = ("frais_port", "commission_plateforme", "frais_emballage", "frais_annexes")

# identifiant du profil local anonyme
LOCAL_OWNER = "local"


class ProductRecord(BaseModel):
    """Fiche produit ; les noms externes (stockage, CSV, JSON) sont ceux des alias."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: Optional[str] = None
    nom: str = ""
    sku: str = ""
    categorie: str = ""
    description: str = ""
    fournisseur: str = ""
    etat: str = ""
    emplacement: str = ""
    tags: str = ""
    notes: str = ""
    quantite: int = 1
    prix_achat: Decimal = Field(ZERO, alias="prixAchat")
    prix_vente: Decimal = Field(ZERO, alias="prixVente")
    frais: Decimal = ZERO
    frais_port: Decimal = Field(ZERO, alias="fraisPort")
    commission_plateforme: Decimal = Field(ZERO, alias="commissionPlateforme")
    frais_emballage: Decimal = Field(ZERO, alias="fraisEmballage")
    frais_annexes: Decimal = Field(ZERO, alias="fraisAnnexes")
    statut: str = DEFAULT_STATUS
    date_achat: Optional[str] = Field(None, alias="dateAchat")
    date_vente: Optional[str] = Field(None, alias="dateVente")
    image_url: str = Field("", alias="imageUrl")
    benefice_unitaire: Decimal = Field(ZERO, alias="beneficeUnitaire")
    benefice_total: Decimal = Field(ZERO, alias="beneficeTotal")
    created_at: Optional[str] = Field(None, alias="createdAt")
    updated_at: Optional[str] = Field(None, alias="updatedAt")

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_text(cls, v):
        if v is None or v == "":
            return None
        return str(v)

    @field_validator(*MONEY_FIELDS, "benefice_unitaire", "benefice_total", mode="before")
    @classmethod
    def _lenient_money(cls, v):
        return parse_money(v)

    @field_validator("quantite", mode="before")
    @classmethod
    def _lenient_quantity(cls, v):
        return parse_quantity(v)

    @field_validator("statut", mode="before")
    @classmethod
    def _default_status(cls, v):
        return (str(v).strip() if v is not None else "") or DEFAULT_STATUS

    @field_validator("nom", "sku", "categorie", "description", "fournisseur", "etat",
                     "emplacement", "tags", "notes", "image_url", mode="before")
    @classmethod
    def _text(cls, v):
        return "" if v is None else str(v)

    @field_validator("date_achat", "date_vente", mode="before")
    @classmethod
    def _date_text(cls, v):
        if v is None:
            return None
        s = str(v).strip()
        return s or None

    def to_document(self) -> dict:
        """Document JSON (noms externes), sans l'id qui sert de clé."""
        return self.model_dump(by_alias=True, mode="json", exclude={"id"})

    def to_public(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")

    @property
    def is_sold(self) -> bool:
        return self.statut == STATUS_SOLD


class Expense(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    desc: str = ""
    amount: Decimal = ZERO
    date: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_text(cls, v):
        return str(v)

    @field_validator("amount", mode="before")
    @classmethod
    def _lenient_amount(cls, v):
        return parse_money(v)


class Supplier(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    name: str
    contact: str = ""
    adresse: str = ""
    phone: str = ""

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_text(cls, v):
        return str(v)


class Preferences(BaseModel):
    """Préférences d'un utilisateur ; les clés inconnues sont conservées telles quelles."""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    monthly_goal: Decimal = Field(Decimal("500"), alias="monthlyGoal")
    expenses: List[Expense] = Field(default_factory=list)
    fournisseurs: List[Supplier] = Field(default_factory=list)
    dark_mode: bool = Field(False, alias="darkMode")
    theme_color: str = "#0f62fe"
    updated_at: Optional[str] = Field(None, alias="updatedAt")

    @field_validator("monthly_goal", mode="before")
    @classmethod
    def _lenient_goal(cls, v):
        d = parse_money(v)
        return d if d > 0 else Decimal("500")

    def to_document(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


@dataclass
class Session:
    user_id: str
    email: str = ""
    display_name: str = ""
    is_anonymous: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ProfitBreakdown:
    total_cost: Decimal
    total_revenue: Decimal
    net_profit: Decimal
    profit_per_unit: Decimal
    roi_percentage: Decimal

    def to_dict(self) -> dict:
        return {
            "totalCost": self.total_cost,
            "totalRevenue": self.total_revenue,
            "netProfit": self.net_profit,
            "profitPerUnit": self.profit_per_unit,
            "roiPercentage": self.roi_percentage,
        }
