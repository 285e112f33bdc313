from typing import Literal, Optional

from pydantic import BaseModel, Field


class AppCfg(BaseModel):
    name: str = "handover-service"


class PathsCfg(BaseModel):
    inbox: str = "data/inbox"
    archive: str = "data/archive"
    error: str = "data/error"
    logs_root: str = "logs"


class LoggingCfg(BaseModel):
    filename: str = "handover.log"
    retention: str = "14 days"
    console: bool = True


class DatabaseCfg(BaseModel):
    url: str = "sqlite:///data/handover.db"
    echo: bool = False


class ParserCfg(BaseModel):
    header_scan_rows: int = Field(default=20, gt=0)
    placeholder_birthdate: str = "2000-01-01"


class ReconcilerCfg(BaseModel):
    max_workers: int = Field(default=4, gt=0)
    occupied_bed: Literal["displace", "reject"] = "displace"
    deadline_sec: Optional[float] = Field(default=None, gt=0)


class WatchCfg(BaseModel):
    filename_glob: str = "*.xlsx"


class Settings(BaseModel):
    app: AppCfg = AppCfg()
    paths: PathsCfg = PathsCfg()
    logging: LoggingCfg = LoggingCfg()
    database: DatabaseCfg = DatabaseCfg()
    parser: ParserCfg = ParserCfg()
    reconciler: ReconcilerCfg = ReconcilerCfg()
    watch: WatchCfg = WatchCfg()
