"""
Seed script: carga datos de demostración para el POS.

Qué crea:
- Locales (3): Casa Central, Sucursal Norte y Depósito.
- Productos: N (por defecto 200) con SKU únicos, precio y stock inicial por local.
- Clientes (~40) con crédito a favor aleatorio.
- Una caja abierta por cajero y ventas de ejemplo cobradas por el orquestador
  (efectivo, tarjeta, mixto y con crédito).

Ejecutar dentro del contenedor de la API:
    docker compose exec api python scripts/seed_demo_data.py --products 200 --sales 60

Note: This is intended for development environments only.
"""

# Add project root to sys.path so `mostrador.*` imports work even if CWD changes
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import argparse
import random
from decimal import Decimal
from uuid import uuid4

from mostrador.common.exceptions import POSError
from mostrador.common.money import Money
from mostrador.database.database import SessionLocal, sync_engine, Base
from mostrador.modules.locations.models import Location
from mostrador.modules.products.models import Product, StockEntry
from mostrador.modules.customers.models import Customer
from mostrador.modules.customers.schemas import CustomerCreate
from mostrador.modules.customers.service import CustomerService
from mostrador.modules.notifications.service import LoggingNotifier
from mostrador.modules.pos.services import DrawerService, SaleOrchestrator
from mostrador.modules.pos.settlement import PaymentMethod, SettlementRequest

CATEGORIES = ["Almacén", "Lácteos", "Bebidas", "Limpieza", "Perfumería", "Panadería"]
BRANDS = ["La Serenísima", "Arcor", "Molinos", "Marolio", "Ledesma", "Cabrales"]
FIRST_NAMES = ["Ana", "Luis", "Marta", "Jorge", "Sofía", "Pablo", "Lucía", "Diego"]
LAST_NAMES = ["Gómez", "Pérez", "Díaz", "Romero", "Sosa", "Álvarez", "Torres"]


def pick(seq):
    return random.choice(seq)


def create_locations(db):
    locations = []
    for name, is_main in (("Casa Central", True), ("Sucursal Norte", False), ("Depósito", False)):
        location = db.query(Location).filter(Location.name == name).first()
        if not location:
            location = Location(name=name, is_main=is_main, is_active=True)
            db.add(location)
            db.commit()
            db.refresh(location)
        locations.append(location)
    return locations


def generate_sku(category: str, brand: str, idx: int) -> str:
    c = ''.join([ch for ch in category.upper() if ch.isalpha()])[:3]
    b = ''.join([ch for ch in brand.upper() if ch.isalpha()])[:3]
    return f"{c}-{b}-{idx:04d}"


def create_products(db, locations, product_count=200):
    products = []
    for i in range(product_count):
        category, brand = pick(CATEGORIES), pick(BRANDS)
        sku = generate_sku(category, brand, i)
        # Idempotent re-run
        existing = db.query(Product).filter(Product.sku == sku).first()
        if existing:
            products.append(existing)
            continue

        product = Product(
            name=f"{category} {brand} {random.randint(1, 999)}g",
            sku=sku,
            description=f"{category} de marca {brand}",
            bar_code=str(random.randint(7790000000000, 7799999999999)),
            price=Money.from_cents(random.randint(150, 25000)),
            is_active=True
        )
        db.add(product)
        db.flush()

        for location in locations:
            db.add(StockEntry(
                product_id=product.id,
                location_id=location.id,
                quantity=random.randint(0, 120),
                reorder_threshold=random.randint(2, 10)
            ))
        products.append(product)

        if (i + 1) % 100 == 0:
            db.commit()
    db.commit()
    return products


def create_customers(db, count=40):
    service = CustomerService(db)
    customers = []
    for i in range(count):
        document = f"{20000000 + i}"
        existing = db.query(Customer).filter(Customer.document == document).first()
        if existing:
            customers.append(existing)
            continue
        customers.append(service.create_customer(CustomerCreate(
            name=f"{pick(FIRST_NAMES)} {pick(LAST_NAMES)}",
            document=document,
            initial_credit=Decimal(random.randint(0, 300))
        )))
    return customers


def create_sales(db, locations, products, customers, sales_count):
    """Cobra ventas de ejemplo con cajeros de cada local de venta."""
    drawers = DrawerService(db)
    orchestrator = SaleOrchestrator(db, LoggingNotifier())
    cashiers = []
    for location in locations[:2]:
        cashier_id = uuid4()
        session = drawers.open(cashier_id, location.id, Money.of("5000.00"), notes="Apertura demo")
        cashiers.append((cashier_id, session.id))

    created, rejected = 0, 0
    for _ in range(sales_count):
        cashier_id, session_id = pick(cashiers)
        lines = {pick(products).id: random.randint(1, 3) for _ in range(random.randint(1, 4))}
        cart = orchestrator.catalog.resolve_cart(lines.items())
        total = cart.total

        method = pick([PaymentMethod.CASH, PaymentMethod.CARD_DEBIT, PaymentMethod.QR, PaymentMethod.MIXED])
        kwargs = {}
        if random.random() < 0.3:
            customer = pick(customers)
            kwargs = {"customer_id": customer.id, "use_credit": True}
            total = total - min(orchestrator.ledger.get_available(customer.id), total)

        if total.is_zero():
            method = PaymentMethod.CASH
        elif method == PaymentMethod.CASH:
            kwargs["cash_tendered"] = Money.from_cents(((total.cents // 1000) + 1) * 1000)
        elif method == PaymentMethod.MIXED:
            cash = Money.from_cents(total.cents // 2)
            if cash.is_zero():
                method = PaymentMethod.CARD_DEBIT
                kwargs["other_tendered"] = total
            else:
                kwargs["cash_tendered"] = cash
                kwargs["other_tendered"] = total - cash
        else:
            kwargs["other_tendered"] = total

        try:
            orchestrator.settle(SettlementRequest(cart=cart, method=method, **kwargs), session_id, cashier_id)
            created += 1
        except POSError as exc:
            # Rechazo de negocio (p. ej. sin stock en el local): la venta no deja cambios
            rejected += 1
            print(f"  Sale rejected: {exc.code} {exc.message}")
    return created, rejected


def main():
    parser = argparse.ArgumentParser(description="Seed POS demo data")
    parser.add_argument("--products", type=int, default=200)
    parser.add_argument("--customers", type=int, default=40)
    parser.add_argument("--sales", type=int, default=60)
    parser.add_argument("--seed", type=int, default=None, help="Semilla aleatoria para repetir los datos")
    args = parser.parse_args()

    if args.seed is not None:
        random.seed(args.seed)

    Base.metadata.create_all(bind=sync_engine)
    db = SessionLocal()
    try:
        locations = create_locations(db)
        print(f"Locations: {', '.join(location.name for location in locations)}")

        print("Creating products...")
        products = create_products(db, locations, product_count=args.products)
        print(f"Products created: {len(products)}")

        print("Creating customers with store credit...")
        customers = create_customers(db, count=args.customers)
        print(f"Customers: {len(customers)}")

        print("Settling demo sales...")
        created, rejected = create_sales(db, locations, products, customers, args.sales)
        print(f"Sales created: {created}, rejected: {rejected}")

        print("\nSeed completed.")
        print("Headers for API requests:")
        print(f"  X-Location-ID: {locations[0].id}")
    finally:
        db.close()


if __name__ == "__main__":
    main()
