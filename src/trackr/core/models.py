"""Data models for Trackr.

This module defines the enums and dataclasses representing the core
bookkeeping entities: Company, User, Account, Transaction, Product and
Entity (counterparty), plus the tables describing which snapshot keys
are array-valued and which are map-valued.

Records live in the store and travel over the wire as plain JSON dicts
with camelCase keys. The dataclasses here are used to build new records;
``to_dict()`` produces the stored/wire form.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class TransactionType(str, Enum):
    """Kinds of ledger transactions."""

    INCOME = "INCOME"
    EXPENSE = "EXPENSE"
    TRANSFER = "TRANSFER"


class UserRole(str, Enum):
    """User roles, most privileged first."""

    SUPER_ADMIN = "SUPER_ADMIN"
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    STAFF = "STAFF"


class UserStatus(str, Enum):
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    REJECTED = "REJECTED"


class CompanyStatus(str, Enum):
    """Company lifecycle: SUSPENDED on registration, ACTIVE once approved."""

    SUSPENDED = "SUSPENDED"
    ACTIVE = "ACTIVE"


class AccountType(str, Enum):
    CASH = "CASH"
    BANK = "BANK"
    CREDIT = "CREDIT"


class PaymentStatus(str, Enum):
    PAID = "PAID"
    CREDIT = "CREDIT"


class EntityType(str, Enum):
    CLIENT = "CLIENT"
    VENDOR = "VENDOR"


class SyncStatus(str, Enum):
    SYNCED = "SYNCED"
    PENDING = "PENDING"


# Partition key used by the privileged caller for cross-tenant pull/push
GLOBAL_PARTITION = "GLOBAL"

# Tenant id of records that belong to no company (the SUPER_ADMIN user)
SYSTEM_TENANT = "SYSTEM"

# Reserved partition key holding system-wide settings on the remote store
SYSTEM_SETTINGS_KEY = "SYSTEM_SETTINGS"

SUPER_ADMIN_ID = "super-admin-1"

# Snapshot keys whose values are lists of records (concatenated on global pull)
ARRAY_FIELDS = ("transactions", "accounts", "products", "entities", "users", "companies")

# Snapshot keys whose values are plain maps (shallow-merged on global pull)
MAP_FIELDS = ("settings", "categories")

COLLECTION_KEYS = ARRAY_FIELDS + MAP_FIELDS

# Mutations to these collections schedule a debounced auto-push
WATCHED_COLLECTIONS = frozenset(["users", "companies", "transactions"])

DEFAULT_CATEGORIES: Dict[str, List[str]] = {
    TransactionType.EXPENSE.value: [
        "Inventory Purchase",
        "Marketing",
        "Payroll",
        "Rent/Office",
        "Shipping",
        "Utilities",
    ],
    TransactionType.INCOME.value: [
        "Product Sales",
        "Service Revenue",
        "Consulting",
        "Interest",
    ],
    TransactionType.TRANSFER.value: ["Internal Transfer"],
}

DEFAULT_PRODUCT_CATEGORIES = ["Electronics", "Apparel", "Grocery", "Services"]


def default_settings() -> Dict[str, Any]:
    """Build a fresh per-installation settings document."""
    return {
        "currency": "PKR",
        "darkMode": True,
        "activeAccountId": "",
        "companyName": "",
        "inventoryCategories": list(DEFAULT_PRODUCT_CATEGORIES),
        "remoteDbConnected": False,
        "pricingRules": {
            "fixedOverhead": 0,
            "variableOverheadPercent": 0,
            "platformFeePercent": 0,
            "targetMarginPercent": 30,
            "autoApply": False,
            "customAdjustments": [],
        },
        "cloud": {
            "scriptUrl": "",
            "autoSync": True,
            "isConnected": False,
        },
        "email": {
            "adminEmail": "",
            "notifyAdminOnNewReg": True,
            "notifyUserOnStatusChange": True,
            "notifySecurityAlerts": True,
        },
    }


def default_categories() -> Dict[str, List[str]]:
    return copy.deepcopy(DEFAULT_CATEGORIES)


def super_admin_record() -> Dict[str, Any]:
    """Return a fresh copy of the fixed SUPER_ADMIN user.

    This record lives outside every tenant and is re-injected on every
    pull-merge, so it always wins over a remote record with the same id.
    """
    return {
        "id": SUPER_ADMIN_ID,
        "companyId": SYSTEM_TENANT,
        "name": "System Owner",
        "email": "owner@trackr.app",
        "password": "admin",
        "pin": "0000",
        "role": UserRole.SUPER_ADMIN.value,
        "status": UserStatus.ACTIVE.value,
    }


@dataclass(frozen=True)
class Company:
    """A tenant organization.

    Attributes:
        id: Unique identifier (also the tenant's partition key)
        name: Display name
        registration_date: ISO timestamp of registration
        status: SUSPENDED until approved, then ACTIVE
        logo_url: Optional logo location
    """

    id: str
    name: str
    registration_date: str
    status: CompanyStatus = CompanyStatus.SUSPENDED
    logo_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "logoUrl": self.logo_url,
            "registrationDate": self.registration_date,
            "status": self.status.value,
        }


@dataclass(frozen=True)
class User:
    """A person who can sign in.

    Email is unique across the whole system (case-insensitive). Passwords
    and PINs are stored and compared as plain strings.
    """

    id: str
    company_id: str
    name: str
    email: str
    password: str
    pin: str
    role: UserRole = UserRole.STAFF
    status: UserStatus = UserStatus.PENDING
    avatar: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "companyId": self.company_id,
            "name": self.name,
            "email": self.email,
            "password": self.password,
            "pin": self.pin,
            "role": self.role.value,
            "status": self.status.value,
        }
        if self.avatar is not None:
            data["avatar"] = self.avatar
        return data


@dataclass(frozen=True)
class Account:
    """A money account. Balance changes only through posted transactions."""

    id: str
    company_id: str
    name: str
    balance: float = 0.0
    color: str = "#6366f1"
    type: AccountType = AccountType.BANK

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "companyId": self.company_id,
            "name": self.name,
            "balance": self.balance,
            "color": self.color,
            "type": self.type.value,
        }


@dataclass(frozen=True)
class Transaction:
    """A ledger entry.

    Attributes:
        account_id: Source account (empty for CREDIT entries)
        to_account_id: Destination account for transfers
        entity_id: Counterparty (client or vendor)
        product_id: Product moved by this entry, with ``quantity`` units
        version: Edit counter, starts at 1
        updated_at: ISO timestamp of the last change
    """

    id: str
    company_id: str
    amount: float
    type: TransactionType
    category: str
    date: str
    account_id: str
    created_by: str
    updated_at: str
    note: str = ""
    to_account_id: Optional[str] = None
    entity_id: Optional[str] = None
    product_id: Optional[str] = None
    quantity: Optional[float] = None
    payment_status: PaymentStatus = PaymentStatus.PAID
    sync_status: SyncStatus = SyncStatus.PENDING
    version: int = 1

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "companyId": self.company_id,
            "amount": self.amount,
            "type": self.type.value,
            "category": self.category,
            "date": self.date,
            "note": self.note,
            "accountId": self.account_id,
            "paymentStatus": self.payment_status.value,
            "createdBy": self.created_by,
            "syncStatus": self.sync_status.value,
            "version": self.version,
            "updatedAt": self.updated_at,
        }
        # Optional references are omitted rather than sent as null
        if self.to_account_id:
            data["toAccountId"] = self.to_account_id
        if self.entity_id:
            data["entityId"] = self.entity_id
        if self.product_id:
            data["productId"] = self.product_id
            data["quantity"] = self.quantity
        return data


@dataclass(frozen=True)
class Product:
    id: str
    company_id: str
    name: str
    sku: str
    categories: List[str] = field(default_factory=list)
    purchase_price: float = 0.0
    selling_price: float = 0.0
    stock: float = 0
    min_stock: float = 5

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "companyId": self.company_id,
            "name": self.name,
            "sku": self.sku,
            "categories": list(self.categories),
            "purchasePrice": self.purchase_price,
            "sellingPrice": self.selling_price,
            "stock": self.stock,
            "minStock": self.min_stock,
        }


@dataclass(frozen=True)
class Entity:
    """A counterparty.

    Balance is positive when the party owes us (receivable) and negative
    when we owe the party (payable).
    """

    id: str
    company_id: str
    name: str
    type: EntityType = EntityType.CLIENT
    email: Optional[str] = None
    phone: Optional[str] = None
    balance: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "companyId": self.company_id,
            "name": self.name,
            "type": self.type.value,
            "email": self.email,
            "phone": self.phone,
            "balance": self.balance,
        }
