# api/routes_settings.py
# Préférences utilisateur, dépenses, fournisseurs, paramètres SKU, remise à zéro locale.
from typing import Optional

from fastapi import APIRouter, Request, Depends, Body, Response
from fastapi import status as http_status
from pydantic import BaseModel

from revente.api.deps import get_ctx, current_user
from revente.core.models import Session
from revente.core.services import settings as prefs_service
from revente.utils.exceptions import ValidationError

router = APIRouter()


class ExpenseIn(BaseModel):
    desc: str
    amount: str
    date: Optional[str] = None


class SupplierIn(BaseModel):
    name: str


class SkuIn(BaseModel):
    prefix: Optional[str] = None
    counter: Optional[int] = None


@router.get("/preferences")
def preferences_get(request: Request, user: Session = Depends(current_user)):
    return get_ctx(request).preferences.load(user.user_id).to_document()


@router.patch("/preferences")
def preferences_patch(request: Request, partial: dict = Body(...), user: Session = Depends(current_user)):
    store = get_ctx(request).preferences
    store.save(user.user_id, partial)
    return store.load(user.user_id).to_document()


@router.post("/preferences/expenses", status_code=http_status.HTTP_201_CREATED)
def expense_add(request: Request, body: ExpenseIn, user: Session = Depends(current_user)):
    if not body.desc.strip():
        raise ValidationError({"desc": "Description requise"})
    exp = prefs_service.add_expense(get_ctx(request).preferences, user.user_id,
                                    body.desc, body.amount, body.date)
    return exp.model_dump(mode="json")


@router.delete("/preferences/expenses/{expense_id}", status_code=http_status.HTTP_204_NO_CONTENT)
def expense_delete(request: Request, expense_id: str, user: Session = Depends(current_user)):
    prefs_service.remove_expense(get_ctx(request).preferences, user.user_id, expense_id)
    return Response(status_code=http_status.HTTP_204_NO_CONTENT)


@router.post("/preferences/suppliers", status_code=http_status.HTTP_201_CREATED)
def supplier_add(request: Request, body: SupplierIn, user: Session = Depends(current_user)):
    sup = prefs_service.add_supplier(get_ctx(request).preferences, user.user_id, body.name)
    if sup is None:
        raise ValidationError({"name": "Nom du fournisseur requis"})
    return sup.model_dump(mode="json")


@router.delete("/preferences/suppliers/{supplier_id}", status_code=http_status.HTTP_204_NO_CONTENT)
def supplier_delete(request: Request, supplier_id: str, user: Session = Depends(current_user)):
    prefs_service.remove_supplier(get_ctx(request).preferences, user.user_id, supplier_id)
    return Response(status_code=http_status.HTTP_204_NO_CONTENT)


@router.get("/settings/sku")
def sku_get(request: Request, user: Session = Depends(current_user)):
    sku = get_ctx(request).sku
    return {"prefix": sku.prefix, "counter": sku.counter}


@router.put("/settings/sku")
def sku_put(request: Request, body: SkuIn, user: Session = Depends(current_user)):
    sku = get_ctx(request).sku
    if body.prefix is not None:
        sku.set_prefix(body.prefix)
    if body.counter is not None:
        sku.reset(body.counter)
    return {"prefix": sku.prefix, "counter": sku.counter}


@router.post("/local/clear")
def local_clear(request: Request, user: Session = Depends(current_user)):
    # ne touche pas aux données distantes
    get_ctx(request).clear_local_data(user.user_id)
    return {"ok": True}
