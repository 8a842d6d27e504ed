from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field


class GeneratorOptions(BaseModel):
    """Where generated files go and how they import each other."""

    out_dir: Path = Field(default=Path("."), description="Project root the layout paths are relative to")
    module: str = Field(default="", description="Python import prefix of out_dir (e.g. 'myapp')")
    handler_dir: str = "biz/handler"
    router_dir: str = "biz/router"
    model_dir: str = "biz/model"
    client_dir: str = "biz/client"
    handler_by_method: bool = Field(
        default=False,
        description="One handler file and one middleware file per operation instead of one handler file per service",
    )
    dry_run: bool = False
