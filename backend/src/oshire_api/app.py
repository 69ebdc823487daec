from __future__ import annotations

from typing import AsyncIterator

import httpx
from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import AsyncSession

from .config import Settings, get_settings
from .db import DOCUMENTS, get_session, init_db
from .errors import GitHubError, NoCredentialError, PersistenceError
from .schemas import DocumentKind, DocumentOut, SyncOut, SyncRequest
from .sync import SyncGuard, run_guarded_sync

app = FastAPI(title="OpenSourceHire GitHub Insights")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

sync_guard = SyncGuard()


@app.on_event("startup")
async def _startup():
    await init_db()


async def get_http_client(settings: Settings = Depends(get_settings)) -> AsyncIterator[httpx.AsyncClient]:
    async with httpx.AsyncClient(timeout=settings.github_timeout_seconds) as client:
        yield client


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}


@app.post("/sync", response_model=SyncOut)
async def sync(
    body: SyncRequest,
    session: AsyncSession = Depends(get_session),
    http: httpx.AsyncClient = Depends(get_http_client),
    settings: Settings = Depends(get_settings),
):
    try:
        result = await run_guarded_sync(
            sync_guard,
            session,
            http,
            settings,
            body.identity,
            body.access_token,
            fallback_name=body.fallback_name,
            fallback_email=body.fallback_email,
        )
    except NoCredentialError as e:
        raise HTTPException(401, detail=str(e))
    except GitHubError as e:
        raise HTTPException(502, detail=str(e))
    except PersistenceError as e:
        raise HTTPException(503, detail=str(e))

    if result is None:
        return SyncOut(
            status="skipped",
            repo_count=0,
            private_repo_count=0,
            public_repo_count=0,
            repos_with_files=0,
        )
    return SyncOut(status="ok", **result.model_dump())


@app.get("/users/{identity}/{kind}", response_model=DocumentOut)
async def read_document(identity: str, kind: DocumentKind, session: AsyncSession = Depends(get_session)):
    doc = await session.get(DOCUMENTS[kind], identity)
    if not doc:
        raise HTTPException(404, detail=f"{kind} not found")
    return DocumentOut(identity=doc.identity, kind=kind, data=doc.data or {}, synced_at=doc.synced_at)
