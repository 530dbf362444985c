import asyncio

import pytest
from sqlalchemy.pool import NullPool

from fakes import OfflineFrankfurter
from folio.db.session import build_engine, build_session_factory, init_db


@pytest.fixture()
def session_factory(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'folio.db'}", poolclass=NullPool)
    asyncio.run(init_db(engine))
    yield build_session_factory(engine)
    asyncio.run(engine.dispose())


@pytest.fixture(autouse=True)
def offline_fx_fallback(monkeypatch):
    # The FX subchain always appends a live Frankfurter client.
    monkeypatch.setattr("folio.providers.chain.FrankfurterProvider", OfflineFrankfurter)
