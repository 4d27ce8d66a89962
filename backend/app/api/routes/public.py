import html

from fastapi import APIRouter, Depends
from fastapi.responses import HTMLResponse

from app.api.deps import get_account_deletion_service
from app.core.config import settings
from app.core.errors import AlreadyProcessed, DeletionError, InvalidOrExpiredToken
from app.services.notifications import format_deletion_date, resolve_timezone

router = APIRouter()

_PAGE = """<!DOCTYPE html>
<html>
<head>
  <title>{title}</title>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <style>
    body {{ font-family: Arial, sans-serif; max-width: 600px; margin: 50px auto; padding: 20px; }}
    .box {{ padding: 15px; border-radius: 4px; margin: 20px 0; }}
    .success {{ background: #d4edda; border: 1px solid #c3e6cb; color: #155724; }}
    .error {{ background: #f8d7da; border: 1px solid #f5c6cb; color: #721c24; }}
    .button {{ display: inline-block; padding: 12px 24px; background: #007bff; color: white; text-decoration: none; border-radius: 4px; margin-top: 20px; }}
  </style>
</head>
<body>
  <h1>{title}</h1>
  {body}
</body>
</html>
"""


def _page(title: str, body: str, status_code: int = 200) -> HTMLResponse:
    return HTMLResponse(_PAGE.format(title=html.escape(title), body=body), status_code=status_code)


def _error_page(exc: DeletionError) -> HTMLResponse:
    if isinstance(exc, AlreadyProcessed):
        deletion_date = exc.extra.get("deletion_date")
        when = ""
        if deletion_date:
            local = format_deletion_date(deletion_date, resolve_timezone(settings.EMAIL_TIMEZONE))
            when = f" ({html.escape(local)})"
        body = (
            '<div class="box error">'
            f"<p>Usunięcie konta zostało już przeprowadzone{when}.</p>"
            "<p>Twojego konta nie można przywrócić.</p>"
            "</div>"
        )
        return _page("Nie można przywrócić konta", body, exc.status_code)
    if isinstance(exc, InvalidOrExpiredToken):
        body = '<div class="box error"><p>Link jest nieprawidłowy lub wygasł.</p></div>'
        return _page("Nieprawidłowy link", body, exc.status_code)
    body = f'<div class="box error"><p>{html.escape(exc.message)}</p></div>'
    return _page("Wystąpił błąd", body, exc.status_code)


@router.get("/undo-deletion/{token}", response_class=HTMLResponse)
def undo_deletion(token: str, service=Depends(get_account_deletion_service)):
    try:
        result = service.undo_by_token(token)
    except DeletionError as exc:
        return _error_page(exc)

    body = (
        '<div class="box success">'
        "<p><strong>Sukces!</strong> Usunięcie Twojego konta zostało pomyślnie anulowane.</p>"
        "<p>Twoje konto pozostaje aktywne i możesz z niego normalnie korzystać.</p>"
        "</div>"
        "<p>Zostaniesz wylogowany i będziesz mógł zalogować się ponownie z pełnym dostępem do konta.</p>"
        f'<a href="{html.escape(result.login_url, quote=True)}" class="button">Przejdź do logowania</a>'
    )
    return _page("Usunięcie konta zostało anulowane", body)
