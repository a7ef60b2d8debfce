import logging
from typing import List

from billflow.errors import ConflictError, NotFoundError, ValidationError
from billflow.models import Customer, CustomerPackage, Package

logger = logging.getLogger(__name__)

UPDATABLE_PACKAGE_FIELDS = (
    "name",
    "description",
    "price_monthly",
    "price_yearly",
    "discount",
    "billing_cycle",
    "extra_add_on",
    "is_active",
    "stripe_monthly_price_id",
    "stripe_yearly_price_id",
    "stripe_coupon_id",
)


def add_on_key(add_on: dict) -> str:
    return f"{add_on.get('module')}:{add_on.get('feature')}"


class CatalogService:
    """Package administration plus the customer's package selection and add-on snapshot."""

    def __init__(self, session):
        self.session = session

    def get_customer_package(self, customer_id) -> CustomerPackage:
        return (
            self.session.query(CustomerPackage)
            .filter_by(customer_id=customer_id, is_delete=False)
            .order_by(CustomerPackage.id.desc())
            .first()
        )

    def get_package(self, package_id, active_only=True) -> Package:
        query = self.session.query(Package).filter_by(id=package_id, is_delete=False)
        if active_only:
            query = query.filter_by(is_active=True)
        return query.first()

    # ============ PACKAGE ADMIN ============

    def list_packages(self, active_only=False) -> List[Package]:
        query = self.session.query(Package).filter_by(is_delete=False)
        if active_only:
            query = query.filter_by(is_active=True)
        return query.order_by(Package.created_at.desc(), Package.id.desc()).all()

    def find_package(self, package_id) -> Package:
        package = self.get_package(package_id, active_only=False)
        if not package:
            raise NotFoundError("Package not found")
        return package

    def _ensure_name_free(self, name, package_id=None):
        query = self.session.query(Package.id).filter(Package.name == name, Package.is_delete.is_(False))
        if package_id is not None:
            query = query.filter(Package.id != package_id)
        if query.first():
            raise ConflictError("Package with this name already exists")

    def create_package(self, fields: dict) -> Package:
        unknown = set(fields) - set(UPDATABLE_PACKAGE_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown package fields: {', '.join(sorted(unknown))}")
        self._ensure_name_free(fields.get("name"))

        package = Package(**fields)
        self.session.add(package)
        self.session.commit()

        logger.info("Package created", extra={"package_id": package.id, "package_name": package.name})
        return package

    def update_package(self, package_id, changes: dict) -> Package:
        """
        Apply an admin edit. Customers who already selected the package keep
        their add-on snapshot; new orders price from the updated package.
        """
        package = self.find_package(package_id)

        unknown = set(changes) - set(UPDATABLE_PACKAGE_FIELDS)
        if unknown:
            raise ValidationError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")
        if changes.get("name") and changes["name"] != package.name:
            self._ensure_name_free(changes["name"], package.id)

        for name, value in changes.items():
            setattr(package, name, value)
        self.session.commit()

        logger.info("Package updated", extra={"package_id": package.id, "fields": sorted(changes)})
        return package

    def delete_package(self, package_id) -> None:
        package = self.find_package(package_id)
        package.is_delete = True
        package.is_active = False
        self.session.commit()
        logger.info("Package deleted", extra={"package_id": package_id})

    # ============ CUSTOMER SELECTION ============

    def select_package(self, customer_id, package_id) -> CustomerPackage:
        """
        Make ``package_id`` the customer's current package.

        Switching to a different package clears the add-on snapshot, since
        add-ons belong to a package. Re-selecting the same package keeps them.
        """
        customer = self.session.query(Customer).filter_by(id=customer_id, is_delete=False).first()
        if not customer:
            raise NotFoundError("Customer not found")

        package = self.get_package(package_id)
        if not package:
            raise NotFoundError("Package not found")

        customer_package = self.get_customer_package(customer_id)
        if customer_package:
            if customer_package.package_id != package.id:
                customer_package.package_id = package.id
                customer_package.add_ons = []
        else:
            customer_package = CustomerPackage(customer_id=customer.id, package_id=package.id, add_ons=[])
            self.session.add(customer_package)

        customer.package_id = package.id
        self.session.commit()

        logger.info(
            "Package selected",
            extra={"customer_id": customer.id, "package_id": package.id, "customer_package_id": customer_package.id},
        )
        return customer_package

    def select_add_ons(self, customer_id, package_id, selected: List[dict]) -> CustomerPackage:
        """
        Replace/extend the customer's add-ons with ``selected``.

        Only add-ons offered by the package survive, and their prices always
        come from the package definition rather than the request.
        """
        customer_package = self.get_customer_package(customer_id)
        if not customer_package:
            raise ValidationError("Select a package first")

        if customer_package.package_id != package_id:
            raise ValidationError("Package mismatch. Please select the current package's add-ons.")

        package = self.get_package(customer_package.package_id, active_only=False)
        if not package:
            raise NotFoundError("Package not found")

        offered = {add_on_key(a): a for a in (package.extra_add_on or [])}

        chosen = {}
        for add_on in selected:
            match = offered.get(add_on_key(add_on))
            if match is None:
                continue
            chosen[add_on_key(match)] = {
                "module": match.get("module"),
                "feature": match.get("feature"),
                "monthlyPrice": match.get("monthlyPrice"),
                "yearlyPrice": match.get("yearlyPrice"),
                "discount": match.get("discount"),
                "description": match.get("description"),
            }

        for existing in customer_package.add_ons or []:
            key = add_on_key(existing)
            if key not in chosen and key in offered:
                chosen[key] = existing

        # reassign so the JSON column is flagged dirty
        customer_package.add_ons = list(chosen.values())
        self.session.commit()

        logger.info(
            "Add-ons selected",
            extra={"customer_id": customer_id, "package_id": package_id, "add_on_count": len(chosen)},
        )
        return customer_package
