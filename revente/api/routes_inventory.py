# Fiches produit : liste / création / modification / suppression / SKU / photo

from typing import List

from fastapi import APIRouter, Request, Depends, Body, File, UploadFile, Query, Response
from fastapi import status as http_status
from pydantic import BaseModel

from revente.api.deps import get_ctx, current_user
from revente.core.models import Session
from revente.core.services import links
from revente.core.services.inventory import query_products, paginate, categories
from revente.core.services.profit import calculate
from revente.utils.money import format_money, format_percent

router = APIRouter()


class BulkDeleteIn(BaseModel):
    ids: List[str]


def _decorate(rec) -> dict:
    """Fiche + rentabilité ; valeurs brutes et valeurs formatées pour l'affichage."""
    prof = calculate(rec)
    out = rec.to_public()
    out["profit"] = {k: str(v) for k, v in prof.to_dict().items()}
    out["profit_fmt"] = {
        "netProfit": format_money(prof.net_profit),
        "roiPercentage": format_percent(prof.roi_percentage),
    }
    return out


@router.get("/products")
def products_page(request: Request,
                  search: str = "", category: str = "", status: str = "", supplier: str = "",
                  sort: str | None = None, order: str = "asc",
                  page: int = 1, page_size: int = 10,
                  user: Session = Depends(current_user)):
    ctx = get_ctx(request)
    records = ctx.products.list(user.user_id)
    rows = query_products(records, search, category, status, supplier, sort, order)
    items, pages = paginate(rows, page, page_size)
    return {
        "items": [_decorate(r) for r in items],
        "total": len(rows),
        "page": min(max(1, page), pages),
        "pages": pages,
        "categories": categories(records),
    }


@router.post("/products", status_code=http_status.HTTP_201_CREATED)
def product_add(request: Request, fields: dict = Body(...), user: Session = Depends(current_user)):
    ctx = get_ctx(request)
    rec = ctx.products.create(user.user_id, fields)
    ctx.journal({"type": "product_add", "owner": user.user_id, "id": rec.id,
                 "sku": rec.sku, "nom": rec.nom, "statut": rec.statut})
    return _decorate(rec)


@router.post("/products/sku")
def product_sku(request: Request, user: Session = Depends(current_user)):
    # compteur persisté à chaque génération
    ctx = get_ctx(request)
    return {"sku": ctx.sku.next_sku(ctx.products.skus(user.user_id))}


@router.post("/products/bulk-delete")
def product_bulk_delete(request: Request, body: BulkDeleteIn, user: Session = Depends(current_user)):
    ctx = get_ctx(request)
    failed = ctx.products.bulk_delete(user.user_id, body.ids)
    ctx.journal({"type": "product_bulk_delete", "owner": user.user_id,
                 "count": len(body.ids) - len(failed), "detail": ",".join(failed)})
    return {"deleted": [i for i in body.ids if i not in set(failed)], "failed": failed}


@router.get("/products/{pid}")
def product_get(request: Request, pid: str, user: Session = Depends(current_user)):
    return _decorate(get_ctx(request).products.get(user.user_id, pid))


@router.get("/products/{pid}/profit")
def product_profit(request: Request, pid: str, user: Session = Depends(current_user)):
    prof = calculate(get_ctx(request).products.get(user.user_id, pid))
    return {
        "totalCost": format_money(prof.total_cost),
        "totalRevenue": format_money(prof.total_revenue),
        "netProfit": format_money(prof.net_profit),
        "profitPerUnit": format_money(prof.profit_per_unit),
        "roiPercentage": format_percent(prof.roi_percentage),
    }


@router.put("/products/{pid}")
def product_update(request: Request, pid: str, fields: dict = Body(...),
                   user: Session = Depends(current_user)):
    ctx = get_ctx(request)
    before = ctx.products.get(user.user_id, pid)
    ctx.products.update(user.user_id, pid, fields)
    after = ctx.products.get(user.user_id, pid)
    ev = {"type": "product_update", "owner": user.user_id, "id": pid,
          "sku": after.sku, "nom": after.nom, "statut": after.statut}
    if after.is_sold and not before.is_sold:
        prof = calculate(after)
        ev["detail"] = f"vendu: profit {format_money(prof.net_profit)} (ROI {format_percent(prof.roi_percentage)}%)"
    ctx.journal(ev)
    return _decorate(after)


@router.delete("/products/{pid}", status_code=http_status.HTTP_204_NO_CONTENT)
def product_delete(request: Request, pid: str, user: Session = Depends(current_user)):
    ctx = get_ctx(request)
    ctx.products.delete(user.user_id, pid)
    ctx.journal({"type": "product_delete", "owner": user.user_id, "id": pid})
    return Response(status_code=http_status.HTTP_204_NO_CONTENT)


@router.post("/products/{pid}/image")
def product_image(request: Request, pid: str, photo: UploadFile = File(...),
                  user: Session = Depends(current_user)):
    ctx = get_ctx(request)
    rec = ctx.products.get(user.user_id, pid)
    url = ctx.images.upload(user.user_id, photo.filename or "photo.jpg", photo.file.read())
    fields = rec.to_public()
    fields["imageUrl"] = url
    ctx.products.update(user.user_id, pid, fields, validate=False)
    return {"imageUrl": url}


@router.get("/link/resolve")
def link_resolve(request: Request, fragment: str = Query(""), user: Session = Depends(current_user)):
    records = get_ctx(request).products.list(user.user_id)
    rec, remaining = links.resolve(fragment, records)
    return {"product": _decorate(rec) if rec else None, "fragment": remaining}
