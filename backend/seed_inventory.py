"""Seed pharmacy inventory with common Indian medicines."""
from decimal import Decimal

from app.db.init_db import init_db
from app.db.session import SessionLocal
from app.models.inventory import Inventory

MEDICINES = [
    {"name": "Paracetamol 500mg", "used_for": "Fever, Headache, Body Pain", "price": 2.50, "units": 200},
    {"name": "Dolo 650", "used_for": "High Fever, Severe Headache, Post-vaccination Pain", "price": 3.00, "units": 180},
    {"name": "Crocin Advance", "used_for": "Fast Relief from Fever and Pain", "price": 4.50, "units": 150},
    {"name": "Cetirizine 10mg", "used_for": "Allergic Rhinitis, Skin Allergies, Itching", "price": 1.50, "units": 250},
    {"name": "Pan 40 (Pantoprazole)", "used_for": "Acidity, GERD, Stomach Ulcers", "price": 6.00, "units": 120},
    {"name": "Combiflam", "used_for": "Pain, Inflammation, Fever", "price": 3.50, "units": 160},
    {"name": "Digene Gel", "used_for": "Acidity, Gas, Indigestion", "price": 95.00, "units": 15},
    {"name": "ORS (Electral)", "used_for": "Dehydration, Diarrhoea", "price": 20.00, "units": 90},
    {"name": "Benadryl Cough Syrup", "used_for": "Dry Cough, Throat Irritation", "price": 110.00, "units": 12},
    {"name": "Vitamin D3 60K", "used_for": "Vitamin D Deficiency", "price": 30.00, "units": 60},
    {"name": "Azithromycin 500mg", "used_for": "Bacterial Infections", "price": 15.00, "units": 80,
     "requires_prescription": True},
    {"name": "Alprazolam 0.5mg", "used_for": "Anxiety Disorders", "price": 5.00, "units": 40,
     "requires_prescription": True},
    {"name": "Tramadol 50mg", "used_for": "Moderate to Severe Pain", "price": 8.00, "units": 30,
     "requires_prescription": True},
]


def seed_inventory():
    init_db()
    db = SessionLocal()
    try:
        # Clear existing inventory for clean seed
        db.query(Inventory).delete()

        for med in MEDICINES:
            db.add(Inventory(
                item_name=med["name"],
                stock=med["units"],
                price=Decimal(str(med["price"])),
                disease=med.get("used_for"),
                requires_prescription=med.get("requires_prescription", False),
            ))
        db.commit()
    finally:
        db.close()

    print(f"\n✅ Successfully added {len(MEDICINES)} medicines to inventory")
    print("=" * 80)
    for med in MEDICINES:
        rx = " (Rx)" if med.get("requires_prescription") else ""
        print(f"  📌 {med['name']}{rx}: ₹{med['price']:.2f} | Stock: {med['units']} units")


if __name__ == "__main__":
    seed_inventory()
