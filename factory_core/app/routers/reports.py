from datetime import date
from io import BytesIO
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from .. import schemas
from ..db import get_db
from ..services.report_service import dashboard_stats, export_cashbook_xlsx

router = APIRouter(prefix="/reports", tags=["Reports"])

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@router.get("/dashboard", response_model=schemas.DashboardOut)
def dashboard(today: Optional[date] = None, db: Session = Depends(get_db)):
    return dashboard_stats(db, today)


@router.get("/cashbook.xlsx")
def cashbook_export(date_from: Optional[date] = None, date_to: Optional[date] = None, db: Session = Depends(get_db)):
    content = export_cashbook_xlsx(db, date_from, date_to)
    filename = f"cashbook_{date_from or 'start'}_{date_to or 'today'}.xlsx"
    return StreamingResponse(
        BytesIO(content),
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
