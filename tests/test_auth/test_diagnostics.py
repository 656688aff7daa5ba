"""Tests for endpoint diagnostics."""

from __future__ import annotations

import httpx
import pytest

from mdmforge.auth.diagnostics import DIAGNOSTIC_PATHS, diagnose
from mdmforge.exceptions import SessionExpired
from mdmforge.models import Session


class TestDiagnose:
    @pytest.mark.asyncio
    async def test_reports_each_endpoint(self, session: Session, make_transport) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("computers"):
                return httpx.Response(403, json={"errors": [{"description": "Privilege required"}]})
            return httpx.Response(200, json={})

        transport = make_transport(handler)
        checks = await diagnose(session, transport=transport)

        assert [c.endpoint for c in checks] == list(DIAGNOSTIC_PATHS)
        by_path = {c.endpoint: c for c in checks}
        assert by_path["JSSResource/computers"].ok is False
        assert by_path["JSSResource/computers"].detail == "Privilege required"
        assert by_path["JSSResource/accounts"].ok is True
        assert all(r.headers["Authorization"] == "Bearer session-token" for r in transport.requests)

    @pytest.mark.asyncio
    async def test_network_failure_is_recorded(self, session: Session, make_transport) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("accounts"):
                raise httpx.ReadTimeout("slow", request=request)
            return httpx.Response(200)

        checks = await diagnose(session, paths=("JSSResource/accounts", "api/ping"), transport=make_transport(handler))
        assert checks[0].status_code is None
        assert "ReadTimeout" in checks[0].detail
        assert checks[1].ok is True

    @pytest.mark.asyncio
    async def test_rejected_session_raises(self, session: Session, make_transport) -> None:
        transport = make_transport(lambda request: httpx.Response(401))
        with pytest.raises(SessionExpired):
            await diagnose(session, transport=transport)
