import os
import tempfile

import pytest

# repo binds its engine at import time
os.environ.setdefault("DATABASE_URL", f"sqlite:///{tempfile.mkdtemp()}/payments.db")


@pytest.fixture
def api():
    from fastapi.testclient import TestClient

    import main

    with TestClient(main.app) as c:
        yield c


@pytest.fixture
def purchase_body():
    return {"amount_cents": 1200, "currency": "EUR", "transactionId": "R100", "number": "4242424242424242"}
