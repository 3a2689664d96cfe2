from fastapi import APIRouter, Depends

from app.cuadraturas.core.context import Actor
from app.cuadraturas.core.deps import require_reconciliation_actor
from app.cuadraturas.core.error_catalog import AppError, ErrorCatalog
from app.cuadraturas.db.session import get_db
from app.cuadraturas.repos.reference import ReferenceRepository
from app.cuadraturas.schemas.errors import error_responses
from app.cuadraturas.schemas.reference import ProductOut, StoreListResponse, StoreOut

router = APIRouter()


@router.get("/cuadraturas/stores", response_model=StoreListResponse)
def list_stores(actor: Actor = Depends(require_reconciliation_actor), db=Depends(get_db)):
    rows, total = ReferenceRepository(db).list_stores()
    return StoreListResponse(rows=[StoreOut.model_validate(row) for row in rows], total=total)


@router.get("/cuadraturas/stores/{store_id}", response_model=StoreOut, responses=error_responses(404))
def get_store(store_id: int, actor: Actor = Depends(require_reconciliation_actor), db=Depends(get_db)):
    store = ReferenceRepository(db).get_store(store_id)
    if store is None:
        raise AppError(ErrorCatalog.NOT_FOUND, details={"store_id": store_id})
    return StoreOut.model_validate(store)


@router.get("/cuadraturas/products/{product_id}", response_model=ProductOut, responses=error_responses(404))
def get_product(product_id: int, actor: Actor = Depends(require_reconciliation_actor), db=Depends(get_db)):
    product = ReferenceRepository(db).get_product(product_id)
    if product is None:
        raise AppError(ErrorCatalog.NOT_FOUND, details={"product_id": product_id})
    return ProductOut.model_validate(product)
