"""
Mock Supabase server providing the auth, storage and PostgREST endpoints
used by the Save Files Service.

State lives in memory. Row and object access is restricted to the owner
encoded in the bearer token, mirroring the row level security policies of
the real project.
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import jwt
from fastapi import Body, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, Response

from shared.logging import get_logger


class MockSupabaseServer:
    """Mock Supabase server implementation."""

    def __init__(self, anon_key: str = "mock-anon-key", jwt_secret: str = "mock-jwt-secret"):
        self.anon_key = anon_key
        self.jwt_secret = jwt_secret
        self.logger = get_logger("mock.supabase")
        self.app = FastAPI(title="Mock Supabase", version="1.0.0")

        # email -> user record
        self.users: Dict[str, Dict[str, Any]] = {}
        # bucket -> path -> (content, content_type)
        self.objects: Dict[str, Dict[str, tuple]] = {}
        # table -> rows
        self.tables: Dict[str, List[Dict[str, Any]]] = {"save_metadata": []}
        self._next_row_id = 1

        self._setup_routes()

    # Users and tokens

    def create_user(self, email: str, password: str = "password123", user_id: Optional[str] = None) -> Dict[str, Any]:
        """Register a user directly, bypassing the sign-up endpoint."""
        user = {"id": user_id or str(uuid.uuid4()), "email": email, "password": password}
        self.users[email] = user
        return self._public_user(user)

    def issue_token(self, user_id: str, expires_in: int = 3600) -> str:
        """Sign an access token for ``user_id``."""
        now = datetime.now(timezone.utc)
        user = self._user_by_id(user_id)
        payload = {
            "sub": user_id,
            "email": user["email"] if user else None,
            "role": "authenticated",
            "aud": "authenticated",
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(seconds=expires_in)).timestamp()),
        }
        return jwt.encode(payload, self.jwt_secret, algorithm="HS256")

    def _user_by_id(self, user_id: str) -> Optional[Dict[str, Any]]:
        for user in self.users.values():
            if user["id"] == user_id:
                return user
        return None

    @staticmethod
    def _public_user(user: Dict[str, Any]) -> Dict[str, Any]:
        return {"id": user["id"], "email": user["email"], "aud": "authenticated", "role": "authenticated"}

    def _require_api_key(self, request: Request):
        if request.headers.get("apikey") != self.anon_key:
            raise HTTPException(status_code=401, detail="Invalid API key")

    def _caller_id(self, request: Request) -> Optional[str]:
        """User id from the bearer token, None for the anon key or a bad token."""
        auth_header = request.headers.get("Authorization", "")
        token = auth_header[7:] if auth_header.startswith("Bearer ") else ""
        if not token or token == self.anon_key:
            return None
        try:
            payload = jwt.decode(token, self.jwt_secret, algorithms=["HS256"], audience="authenticated")
        except jwt.InvalidTokenError:
            return None
        user_id = payload.get("sub")
        return user_id if self._user_by_id(user_id) else None

    def _setup_routes(self):
        """Set up mock Supabase routes."""

        @self.app.exception_handler(HTTPException)
        async def supabase_error(request: Request, exc: HTTPException):
            return JSONResponse(status_code=exc.status_code, content={"message": exc.detail})

        @self.app.post("/auth/v1/signup")
        async def signup(request: Request, credentials: Dict[str, str] = Body(...)):
            self._require_api_key(request)
            if credentials.get("email") in self.users:
                raise HTTPException(status_code=422, detail="User already registered")
            return self.create_user(credentials["email"], credentials.get("password", ""))

        @self.app.post("/auth/v1/token")
        async def token(request: Request, grant_type: str, credentials: Dict[str, str] = Body(...)):
            self._require_api_key(request)
            if grant_type != "password":
                raise HTTPException(status_code=400, detail="Unsupported grant type")
            user = self.users.get(credentials.get("email", ""))
            if user is None or user["password"] != credentials.get("password"):
                raise HTTPException(status_code=400, detail="Invalid login credentials")
            return {
                "access_token": self.issue_token(user["id"]),
                "token_type": "bearer",
                "expires_in": 3600,
                "user": self._public_user(user),
            }

        @self.app.get("/auth/v1/user")
        async def get_user(request: Request):
            self._require_api_key(request)
            user_id = self._caller_id(request)
            if user_id is None:
                raise HTTPException(status_code=401, detail="invalid JWT")
            return self._public_user(self._user_by_id(user_id))

        @self.app.post("/storage/v1/object/{bucket}/{path:path}")
        async def upload_object(bucket: str, path: str, request: Request):
            self._require_api_key(request)
            self._check_object_owner(request, path)
            objects = self.objects.setdefault(bucket, {})
            upsert = request.headers.get("x-upsert") == "true"
            if path in objects and not upsert:
                raise HTTPException(status_code=409, detail="The resource already exists")
            objects[path] = (await request.body(), request.headers.get("Content-Type"))
            return {"Key": f"{bucket}/{path}"}

        @self.app.get("/storage/v1/object/{bucket}/{path:path}")
        async def download_object(bucket: str, path: str, request: Request):
            self._require_api_key(request)
            self._check_object_owner(request, path)
            stored = self.objects.get(bucket, {}).get(path)
            if stored is None:
                raise HTTPException(status_code=404, detail="Object not found")
            content, content_type = stored
            return Response(content=content, media_type=content_type or "application/octet-stream")

        @self.app.delete("/storage/v1/object/{bucket}")
        async def remove_objects(bucket: str, request: Request, body: Dict[str, List[str]] = Body(...)):
            self._require_api_key(request)
            removed = []
            for path in body.get("prefixes", []):
                self._check_object_owner(request, path)
                if self.objects.get(bucket, {}).pop(path, None) is not None:
                    removed.append({"name": path, "bucket_id": bucket})
            return removed

        @self.app.get("/rest/v1/{table}")
        async def select_rows(table: str, request: Request):
            self._require_api_key(request)
            rows = self._visible_rows(table, request)
            params = request.query_params

            order = params.get("order")
            if order:
                column, _, direction = order.partition(".")
                rows.sort(key=lambda row: row.get(column) or "", reverse=direction == "desc")
            if params.get("limit"):
                rows = rows[:int(params["limit"])]

            select = params.get("select")
            if select and select != "*":
                columns = select.split(",")
                rows = [{column: row.get(column) for column in columns} for row in rows]
            return rows

        @self.app.post("/rest/v1/{table}")
        async def upsert_row(table: str, request: Request, record: Dict[str, Any] = Body(...)):
            self._require_api_key(request)
            caller = self._caller_id(request)
            if caller is None or record.get("user_id") != caller:
                raise HTTPException(status_code=403, detail="new row violates row-level security policy")

            now = datetime.now(timezone.utc).isoformat()
            conflict_columns = [c for c in request.query_params.get("on_conflict", "").split(",") if c]
            merge = "resolution=merge-duplicates" in request.headers.get("Prefer", "")
            rows = self.tables.setdefault(table, [])

            existing = None
            if conflict_columns:
                existing = next(
                    (row for row in rows if all(row.get(c) == record.get(c) for c in conflict_columns)),
                    None,
                )
            if existing is not None and not merge:
                raise HTTPException(status_code=409, detail="duplicate key value violates unique constraint")

            if existing is not None:
                existing.update(record)
                existing["updated_at"] = now
                stored = existing
            else:
                stored = {"id": self._next_row_id, "created_at": now, "updated_at": now, **record}
                self._next_row_id += 1
                rows.append(stored)

            return JSONResponse(status_code=201, content=[dict(stored)])

        @self.app.delete("/rest/v1/{table}")
        async def delete_rows(table: str, request: Request):
            self._require_api_key(request)
            doomed = self._visible_rows(table, request)
            doomed_ids = {row["id"] for row in doomed}
            self.tables[table] = [row for row in self.tables.get(table, []) if row["id"] not in doomed_ids]
            return Response(status_code=204)

    def _check_object_owner(self, request: Request, path: str):
        caller = self._caller_id(request)
        if caller is None or not path.startswith(f"{caller}/"):
            raise HTTPException(status_code=403, detail="new row violates row-level security policy")

    def _visible_rows(self, table: str, request: Request) -> List[Dict[str, Any]]:
        """Rows owned by the caller that match every ``column=eq.value`` filter."""
        if table not in self.tables:
            raise HTTPException(status_code=404, detail=f'relation "public.{table}" does not exist')

        caller = self._caller_id(request)
        rows = [dict(row) for row in self.tables[table] if caller is not None and row.get("user_id") == caller]

        for column, condition in request.query_params.items():
            if column in ("select", "order", "limit", "on_conflict"):
                continue
            operator, _, value = condition.partition(".")
            if operator != "eq":
                raise HTTPException(status_code=400, detail=f"Unsupported operator {operator}")
            rows = [row for row in rows if str(row.get(column)) == value]
        return rows


def create_app():
    """Create mock Supabase application."""
    server = MockSupabaseServer()
    return server.app


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(create_app(), host="0.0.0.0", port=54321)
