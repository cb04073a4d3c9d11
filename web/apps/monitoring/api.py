from django.db import DatabaseError, connection
from django.http import JsonResponse

from apps.orders.http_adapters import provider_cb


def health_view(_request):
    db_ok = False
    try:
        with connection.cursor() as cur:
            cur.execute("SELECT 1;")
        db_ok = True
    except DatabaseError:
        db_ok = False

    # An open circuit degrades payments but the shop can still take carts.
    circuit = provider_cb.state
    code = 200 if db_ok else 503
    return JsonResponse(
        {
            "ok": db_ok,
            "components": {
                "db": {"ok": db_ok},
                "payments_provider": {"ok": circuit != "OPEN", "circuit": circuit},
            },
        },
        status=code,
    )
