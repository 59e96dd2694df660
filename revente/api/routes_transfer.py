# api/routes_transfer.py
# Export CSV / JSON et import de fichiers.
from typing import List, Optional

from fastapi import APIRouter, Request, Depends, File, UploadFile, Query
from fastapi.responses import Response

from revente.api.deps import get_ctx, current_user
from revente.core.models import Session
from revente.export import transfer
from revente.utils.exceptions import DataImportError

router = APIRouter()


def _selected(ctx, owner: str, ids: Optional[List[str]]):
    records = ctx.products.list(owner)
    if not ids:
        return records
    wanted = set(ids)
    return [r for r in records if r.id in wanted]


@router.get("/export/csv")
def export_csv(request: Request, ids: Optional[List[str]] = Query(None),
               user: Session = Depends(current_user)):
    body = transfer.export_csv(_selected(get_ctx(request), user.user_id, ids))
    return Response(content=body, media_type="text/csv",
                    headers={"Content-Disposition": 'attachment; filename="export-produits.csv"'})


@router.get("/export/json")
def export_json(request: Request, user: Session = Depends(current_user)):
    body = transfer.export_json(get_ctx(request).products.list(user.user_id))
    return Response(content=body, media_type="application/json",
                    headers={"Content-Disposition": 'attachment; filename="produits-backup.json"'})


@router.post("/import")
def import_file(request: Request, file: UploadFile = File(...), user: Session = Depends(current_user)):
    ctx = get_ctx(request)
    try:
        content = file.file.read().decode("utf-8")
    except UnicodeDecodeError as e:
        raise DataImportError("Fichier illisible (UTF-8 attendu)") from e
    created = transfer.import_into(ctx.products, user.user_id, file.filename or "", content)
    ctx.journal({"type": "import", "owner": user.user_id, "count": len(created),
                 "detail": file.filename or ""})
    return {"imported": len(created), "ids": [r.id for r in created]}
