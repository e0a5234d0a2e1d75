"""
Compile REST routes.

All routes are mounted under /api by main.py.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List

from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from nodescript.server.serializers.graph_serializer import (
    FunctionBody,
    GraphBody,
    SchemaError,
    function_from_dict,
    graph_from_dict,
)
from nodescript.server.state import compiler_state

logger = logging.getLogger(__name__)

router = APIRouter()


def _schema_error(exc: SchemaError) -> HTTPException:
    return HTTPException(status_code=422, detail={"message": str(exc), "details": exc.details})


# ── GET /functions ────────────────────────────────────────────────────────────

@router.get("/functions")
async def list_functions() -> List[str]:
    return compiler_state.function_names()


# ── PUT /functions/:name ──────────────────────────────────────────────────────

@router.put("/functions/{name}")
async def put_function(name: str, body: FunctionBody) -> JSONResponse:
    if body.name != name:
        raise HTTPException(status_code=409,
                            detail=f"path names '{name}' but the body defines '{body.name}'")
    try:
        function = function_from_dict(body.model_dump(by_alias=True))
    except SchemaError as exc:
        raise _schema_error(exc)

    created = compiler_state.put_function(function)
    return JSONResponse(status_code=201 if created else 200,
                        content={"name": function.name, "arity": function.arity, "created": created})


# ── DELETE /functions/:name ───────────────────────────────────────────────────

@router.delete("/functions/{name}")
async def delete_function(name: str) -> Dict[str, Any]:
    if compiler_state.remove_function(name) is None:
        raise HTTPException(status_code=404, detail=f"function '{name}' is not registered")
    return {"ok": True}


# ── POST /compile ─────────────────────────────────────────────────────────────

class CompileBody(BaseModel):
    program: GraphBody
    functions: List[FunctionBody] = Field(default_factory=list)


@router.post("/compile")
async def compile_program(body: CompileBody) -> JSONResponse:
    try:
        program = graph_from_dict(body.program.model_dump(by_alias=True))
        extra = [function_from_dict(f.model_dump(by_alias=True)) for f in body.functions]
    except SchemaError as exc:
        raise _schema_error(exc)

    result = compiler_state.compile(program, extra)
    if not result.ok:
        logger.info(f"compile of '{program.name}' rejected with {len(result.errors)} error(s)")
        return JSONResponse(status_code=422, content=result.to_dict())
    return JSONResponse(status_code=200, content=result.to_dict())
