"""Records: medicines, committed orders and the run ledger for the pharmacy console."""
from fastapi import APIRouter, Depends, Query
from typing import List

from app.agent.entities import Product
from app.api.deps import CheckoutServices, get_services
from app.core.exceptions import BusinessError
from app.schemas.records import MedicineRecord, OrderRecord, RunRecordOut

router = APIRouter()


def _medicine(product: Product) -> MedicineRecord:
    return MedicineRecord(
        medicine_name=product.name,
        stock=product.stock,
        price=product.unit_price,
        requires_prescription=product.requires_prescription,
        disease=product.disease,
    )


@router.get("/medicines", response_model=List[MedicineRecord])
def list_medicines(services: CheckoutServices = Depends(get_services)):
    """Live inventory straight from the store (not the cached snapshot)."""
    return [_medicine(p) for p in services.store.get_catalog()]


@router.get("/medicine", response_model=MedicineRecord)
def get_medicine(
    medicine_name: str = Query(..., min_length=1),
    services: CheckoutServices = Depends(get_services),
):
    product = services.store.get_product(medicine_name)
    if product is None:
        raise BusinessError.not_found(f"Medicine '{medicine_name}'")
    return _medicine(product)


@router.get("/orders", response_model=List[OrderRecord])
def list_orders(
    limit: int = Query(100, ge=1, le=500),
    services: CheckoutServices = Depends(get_services),
):
    """Committed orders, newest first."""
    return [OrderRecord.model_validate(o) for o in services.store.list_orders(limit)]


@router.get("/runs", response_model=List[RunRecordOut])
def list_runs(
    limit: int = Query(50, ge=1, le=200),
    services: CheckoutServices = Depends(get_services),
):
    """Run ledger, newest first."""
    return [RunRecordOut.model_validate(r) for r in services.history.records(limit)]
