"""Bookkeeping operations for Trackr.

This module implements the operations that mutate the local store:
company registration and approval, sign-in and PIN lock, staff users,
accounts, products, parties, and transaction posting.

Posting a PAID transaction moves account balances; a CREDIT transaction
leaves accounts alone and moves the counterparty balance instead.
Deleting a transaction reverses exactly what posting did.

CRITICAL: This module must have NO network or UI dependencies. Remote
lookups go through an optional ``remote`` collaborator (the sync engine).
"""

from __future__ import annotations

import hashlib
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from .ids import UuidGenerator
from .models import (
    Account,
    AccountType,
    Company,
    CompanyStatus,
    Entity,
    EntityType,
    PaymentStatus,
    Product,
    SUPER_ADMIN_ID,
    Transaction,
    TransactionType,
    User,
    UserRole,
    UserStatus,
)
from .store import ORIGIN_SYNC, LocalStore
from .validation import (
    DuplicateRegistrationError,
    ValidationError,
    normalize_email,
    validate_amount,
    validate_email,
    validate_enum,
    validate_pin,
    validate_required,
)

logger = logging.getLogger(__name__)

__all__ = ["Ledger", "password_matches"]

DEFAULT_PIN = "1234"


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def password_matches(stored: str, supplied: str) -> bool:
    """Check a password against its stored form.

    Stored passwords are either the plaintext itself or its SHA-256 hex
    digest; both forms are accepted.
    """
    if stored is None:
        return False
    digest = hashlib.sha256(supplied.encode("utf-8")).hexdigest()
    return stored == supplied or stored == digest


class Ledger:
    """Domain operations over a LocalStore.

    Attributes:
        store: The LocalStore being mutated
        ids: Id generator (``new_id()`` and ``new_sku()``)
        remote: Optional object offering ``find_user(email)`` and
            ``notify(...)``; normally the SyncEngine
    """

    def __init__(
        self,
        store: LocalStore,
        ids: Optional[Any] = None,
        remote: Optional[Any] = None,
        clock: Callable[[], str] = _utc_now,
    ) -> None:
        self.store = store
        self.ids = ids or UuidGenerator()
        self.remote = remote
        self.clock = clock

    # ===== Registration & approval =====

    def register(
        self,
        company_name: str,
        admin_name: str,
        email: str,
        password: str,
        pin: Optional[str] = None,
    ) -> str:
        """Register a new company with its first admin user.

        The company starts SUSPENDED and the admin PENDING until approved.
        The new admin is signed in immediately.

        Returns:
            The new admin user's id

        Raises:
            ValidationError: If a field is missing or malformed
            DuplicateRegistrationError: If the email exists anywhere,
                compared case-insensitively. Nothing is mutated.
        """
        company_name = validate_required(company_name, "company")
        admin_name = validate_required(admin_name, "name")
        email = validate_email(email)
        password = validate_required(password, "password")
        pin = validate_pin(pin) if pin is not None else DEFAULT_PIN

        wanted = normalize_email(email)
        for user in self.store.get("users"):
            if normalize_email(user.get("email", "")) == wanted:
                logger.info(f"Registration rejected, email already in use: {email}")
                raise DuplicateRegistrationError(email)

        company = Company(
            id=self.ids.new_id(),
            name=company_name,
            registration_date=self.clock(),
            status=CompanyStatus.SUSPENDED,
        )
        admin = User(
            id=self.ids.new_id(),
            company_id=company.id,
            name=admin_name,
            email=email,
            password=password,
            pin=pin,
            role=UserRole.ADMIN,
            status=UserStatus.PENDING,
        )
        accounts = [
            Account(id=self.ids.new_id(), company_id=company.id, name="Cash in Hand",
                    color="#10b981", type=AccountType.CASH),
            Account(id=self.ids.new_id(), company_id=company.id, name="Bank Account",
                    color="#6366f1", type=AccountType.BANK),
        ]

        self.store.apply({
            "companies": self.store.get("companies") + [company.to_dict()],
            "users": self.store.get("users") + [admin.to_dict()],
            "accounts": self.store.get("accounts") + [a.to_dict() for a in accounts],
        })
        self.store.set_session(current_user_id=admin.id, is_locked=False, show_landing=False)
        logger.info(f"Registered company '{company_name}' ({company.id}) with admin {email}")

        self._notify(
            to=email,
            subject="Registration received",
            message=f"Your company {company_name} is awaiting approval.",
            type_="NEW_REGISTRATION",
        )
        return admin.id

    def approve_company(self, company_id: str) -> bool:
        """Set a company ACTIVE. Returns False if it does not exist."""
        company = self.store.find("companies", company_id)
        if company is None:
            return False
        company["status"] = CompanyStatus.ACTIVE.value
        self._replace_record("companies", company)
        logger.info(f"Company {company_id} approved")
        return True

    def approve_user(self, user_id: str) -> bool:
        """Set a user ACTIVE and activate the user's company."""
        user = self._set_user_status(user_id, UserStatus.ACTIVE)
        if user is None:
            return False
        self.approve_company(user.get("companyId", ""))
        self._notify(
            to=user.get("email", ""),
            subject="Account approved",
            message=f"Access for {user.get('name')} has been approved.",
            type_="STATUS_CHANGE",
        )
        return True

    def reject_user(self, user_id: str) -> bool:
        """Set a user REJECTED."""
        user = self._set_user_status(user_id, UserStatus.REJECTED)
        if user is None:
            return False
        self._notify(
            to=user.get("email", ""),
            subject="Account rejected",
            message=f"Access for {user.get('name')} has been rejected.",
            type_="STATUS_CHANGE",
        )
        return True

    def _set_user_status(self, user_id: str, status: UserStatus) -> Optional[Dict[str, Any]]:
        if user_id == SUPER_ADMIN_ID:
            raise ValidationError("user_id", "the system owner's status cannot change")
        user = self.store.find("users", user_id)
        if user is None:
            return None
        user["status"] = status.value
        self._replace_record("users", user)
        logger.info(f"User {user_id} set to {status.value}")
        return user

    # ===== Session =====

    def login(self, email: str, password: str) -> Optional[str]:
        """Sign in by email and password.

        Local users are checked first. If none matches and a remote is
        available, the user is looked up remotely and, on a password
        match, added to the local users collection.

        Returns:
            The signed-in user's id, or None if authentication failed
        """
        wanted = normalize_email(email or "")
        for user in self.store.get("users"):
            if normalize_email(user.get("email", "")) == wanted and password_matches(
                user.get("password"), password
            ):
                self._start_session(user["id"])
                return user["id"]

        if self.remote is None:
            return None

        remote_user = self.remote.find_user(email)
        if not remote_user or not password_matches(remote_user.get("password"), password):
            logger.info(f"Login failed for {email}")
            return None

        users = [u for u in self.store.get("users") if u.get("id") != remote_user.get("id")]
        self.store.replace("users", users + [remote_user], origin=ORIGIN_SYNC)
        self._start_session(remote_user["id"])
        logger.info(f"Signed in {email} using the remote user directory")
        return remote_user["id"]

    def _start_session(self, user_id: str) -> None:
        self.store.set_session(current_user_id=user_id, is_locked=False, show_landing=False)

    def logout(self) -> None:
        self.store.set_session(current_user_id=None, is_locked=True, show_landing=True)

    def lock(self) -> None:
        self.store.set_session(is_locked=True)

    def unlock(self, pin: str, user_id: Optional[str] = None) -> bool:
        """Unlock with a PIN, optionally switching to another user.

        Returns:
            True if the PIN matched
        """
        target_id = user_id or self.store.current_user_id
        if target_id is None:
            return False
        user = self.store.find("users", target_id)
        if user is None or user.get("pin") != pin:
            return False
        self.store.set_session(current_user_id=target_id, is_locked=False)
        return True

    def current_tenant(self) -> str:
        """Get the signed-in user's company id.

        Raises:
            ValidationError: If nobody is signed in, or the user's company
                is not a known company (the system owner has none)
        """
        user = self.store.current_user()
        if user is None:
            raise ValidationError("session", "no user is signed in")
        company_id = user.get("companyId", "")
        if self.store.find("companies", company_id) is None:
            raise ValidationError("session", f"signed-in user has no company: {company_id}")
        return company_id

    # ===== Staff users =====

    def add_staff_user(self, name: str, pin: str, role: UserRole = UserRole.STAFF) -> str:
        """Add a user to the current company, identified by PIN.

        The email is derived from the name and the password equals the PIN.
        """
        name = validate_required(name, "name")
        pin = validate_pin(pin)
        role = validate_enum(role, UserRole, "role")
        if role is UserRole.SUPER_ADMIN:
            raise ValidationError("role", "cannot create another system owner")

        user = User(
            id=self.ids.new_id(),
            company_id=self.current_tenant(),
            name=name,
            email=f"{''.join(name.split()).lower()}@trackr.com",
            password=pin,
            pin=pin,
            role=role,
            status=UserStatus.ACTIVE,
        )
        self.store.replace("users", self.store.get("users") + [user.to_dict()])
        return user.id

    def delete_user(self, user_id: str) -> bool:
        """Remove a user. The system owner can never be removed."""
        if user_id == SUPER_ADMIN_ID:
            return False
        users = self.store.get("users")
        remaining = [u for u in users if u.get("id") != user_id]
        if len(remaining) == len(users):
            return False
        self.store.replace("users", remaining)
        return True

    # ===== Accounts, products, parties =====

    def add_account(
        self,
        name: str,
        type: Any = AccountType.BANK,
        balance: float = 0.0,
        color: str = "#6366f1",
    ) -> str:
        """Open an account with an opening balance."""
        account = Account(
            id=self.ids.new_id(),
            company_id=self.current_tenant(),
            name=validate_required(name, "name"),
            balance=float(balance),
            color=color,
            type=validate_enum(type, AccountType, "type"),
        )
        self.store.replace("accounts", self.store.get("accounts") + [account.to_dict()])
        return account.id

    def add_product(
        self,
        name: str,
        sku: Optional[str] = None,
        categories: Optional[List[str]] = None,
        purchase_price: float = 0.0,
        selling_price: float = 0.0,
        stock: float = 0,
        min_stock: float = 5,
    ) -> str:
        """Add a product. A SKU is generated when none is given."""
        product = Product(
            id=self.ids.new_id(),
            company_id=self.current_tenant(),
            name=validate_required(name, "name"),
            sku=(sku or "").strip() or self.ids.new_sku(),
            categories=list(categories or []),
            purchase_price=float(purchase_price),
            selling_price=float(selling_price),
            stock=stock,
            min_stock=min_stock,
        )
        products = self.store.get("products")
        if any(p.get("sku") == product.sku for p in products):
            raise ValidationError("sku", f"already in use: {product.sku}")
        self.store.replace("products", products + [product.to_dict()])
        return product.id

    def add_entity(
        self,
        name: str,
        type: Any = EntityType.CLIENT,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        balance: float = 0.0,
    ) -> str:
        """Add a client or vendor with an opening balance."""
        entity = Entity(
            id=self.ids.new_id(),
            company_id=self.current_tenant(),
            name=validate_required(name, "name"),
            type=validate_enum(type, EntityType, "type"),
            email=email,
            phone=phone,
            balance=float(balance),
        )
        self.store.replace("entities", self.store.get("entities") + [entity.to_dict()])
        return entity.id

    # ===== Transactions =====

    def post_transaction(
        self,
        amount: Any,
        type: Any,
        account_id: str = "",
        category: Optional[str] = None,
        date: Optional[str] = None,
        note: str = "",
        to_account_id: Optional[str] = None,
        entity_id: Optional[str] = None,
        product_id: Optional[str] = None,
        quantity: Optional[float] = None,
        payment_status: Any = PaymentStatus.PAID,
    ) -> str:
        """Record a transaction and apply its side effects.

        Side effects:
            PAID INCOME/EXPENSE: account balance +/- amount
            PAID TRANSFER: amount moves from account_id to to_account_id
            CREDIT with a party: party balance +amount (INCOME) or -amount (EXPENSE)
            With a product: stock -quantity (INCOME) or +quantity (EXPENSE)

        Returns:
            The new transaction's id
        """
        amount = validate_amount(amount)
        tx_type = validate_enum(type, TransactionType, "type")
        status = validate_enum(payment_status, PaymentStatus, "payment_status")
        company_id = self.current_tenant()
        user = self.store.current_user()

        accounts = self.store.get("accounts")
        account_ids = {a.get("id") for a in accounts}
        if status is PaymentStatus.PAID and account_id not in account_ids:
            raise ValidationError("account_id", f"unknown account: {account_id}")
        if tx_type is TransactionType.TRANSFER:
            if status is not PaymentStatus.PAID:
                raise ValidationError("payment_status", "transfers must be PAID")
            if to_account_id not in account_ids or to_account_id == account_id:
                raise ValidationError("to_account_id", "transfer needs a different existing account")
        if entity_id and self.store.find("entities", entity_id) is None:
            raise ValidationError("entity_id", f"unknown party: {entity_id}")
        if product_id:
            if self.store.find("products", product_id) is None:
                raise ValidationError("product_id", f"unknown product: {product_id}")
            quantity = validate_amount(quantity if quantity is not None else 1, "quantity")

        if category is None:
            options = self.store.get("categories").get(tx_type.value) or [""]
            category = options[0]

        now = self.clock()
        tx = Transaction(
            id=self.ids.new_id(),
            company_id=company_id,
            amount=amount,
            type=tx_type,
            category=category,
            date=date or now,
            account_id=account_id if status is PaymentStatus.PAID else "",
            created_by=user["id"],
            updated_at=now,
            note=note,
            to_account_id=to_account_id if tx_type is TransactionType.TRANSFER else None,
            entity_id=entity_id,
            product_id=product_id,
            quantity=quantity if product_id else None,
            payment_status=status,
        ).to_dict()

        replacements = self._effects(tx, sign=1)
        replacements["transactions"] = [tx] + self.store.get("transactions")
        self.store.apply(replacements)
        logger.info(f"Posted {tx_type.value} {amount} ({status.value}) as {tx['id']}")
        return tx["id"]

    def delete_transaction(self, transaction_id: str) -> bool:
        """Delete a transaction and reverse its side effects."""
        tx = self.store.find("transactions", transaction_id)
        if tx is None:
            return False
        replacements = self._effects(tx, sign=-1)
        replacements["transactions"] = [
            t for t in self.store.get("transactions") if t.get("id") != transaction_id
        ]
        self.store.apply(replacements)
        return True

    def _effects(self, tx: Dict[str, Any], sign: int) -> Dict[str, Any]:
        """Compute the collections changed by posting (+1) or reversing (-1) ``tx``."""
        replacements: Dict[str, Any] = {}
        amount = float(tx.get("amount", 0)) * sign
        tx_type = tx.get("type")
        inflow = tx_type == TransactionType.INCOME.value

        if tx.get("paymentStatus") == PaymentStatus.PAID.value:
            accounts = self.store.get("accounts")
            for account in accounts:
                if tx_type == TransactionType.TRANSFER.value:
                    if account.get("id") == tx.get("accountId"):
                        account["balance"] = account.get("balance", 0) - amount
                    elif account.get("id") == tx.get("toAccountId"):
                        account["balance"] = account.get("balance", 0) + amount
                elif account.get("id") == tx.get("accountId"):
                    account["balance"] = account.get("balance", 0) + (amount if inflow else -amount)
            replacements["accounts"] = accounts
        elif tx.get("entityId"):
            entities = self.store.get("entities")
            for entity in entities:
                if entity.get("id") == tx.get("entityId"):
                    entity["balance"] = entity.get("balance", 0) + (amount if inflow else -amount)
            replacements["entities"] = entities

        if tx.get("productId") and tx_type != TransactionType.TRANSFER.value:
            quantity = float(tx.get("quantity") or 0) * sign
            products = self.store.get("products")
            for product in products:
                if product.get("id") == tx.get("productId"):
                    product["stock"] = product.get("stock", 0) + (-quantity if inflow else quantity)
            replacements["products"] = products

        return replacements

    # ===== Helpers =====

    def _replace_record(self, key: str, record: Dict[str, Any]) -> None:
        records = [record if r.get("id") == record.get("id") else r for r in self.store.get(key)]
        self.store.replace(key, records)

    def _notify(self, to: str, subject: str, message: str, type_: str) -> None:
        if self.remote is None:
            return
        settings = self.store.get("settings")
        admin_email = (settings.get("email") or {}).get("adminEmail") or None
        self.remote.notify(to=to, subject=subject, message=message, type=type_, admin_email=admin_email)
