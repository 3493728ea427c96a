from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from storefront.api.deps import get_db, require_customer
from storefront.models.person import Person
from storefront.schemas.catalog import PurchaseRecordRead
from storefront.schemas.common import ListResponse
from storefront.services.purchases import PurchaseService
from storefront.services.response import list_response

router = APIRouter(prefix="/purchases", tags=["purchases"])


@router.get("", response_model=ListResponse[PurchaseRecordRead])
def list_my_purchases(
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    person: Person = Depends(require_customer),
    db: Session = Depends(get_db),
):
    items, total = PurchaseService(db).list_for_person(person.id, limit, offset)
    return list_response(items, limit, offset, total=total)
