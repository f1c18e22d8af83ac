"""
Relatório de execução do pipeline.

O formato JSON (chaves camelCase) é consumido pelo agendador externo e pelo
painel administrativo.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional


@dataclass
class SourceResult:
    """Resultado de um leiloeiro dentro da execução."""
    auctioneer: str
    success: bool = False
    scraped: int = 0
    created: int = 0
    updated: int = 0
    deactivated: int = 0
    errors: int = 0
    execution_time_ms: int = 0
    error_messages: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "auctioneer": self.auctioneer,
            "success": self.success,
            "scraped": self.scraped,
            "created": self.created,
            "updated": self.updated,
            "errors": self.errors,
            "executionTimeMs": self.execution_time_ms,
            "deactivated": self.deactivated,
            "errorMessages": list(self.error_messages),
        }

    def to_log_record(
        self,
        auctioneer_id: str,
        started_at: datetime,
        completed_at: datetime,
    ) -> Dict[str, Any]:
        """Linha da tabela scraping_logs para esta fonte."""
        return {
            "auctioneer_id": auctioneer_id,
            "status": "success" if self.success else "error",
            "vehicles_scraped": self.scraped,
            "vehicles_created": self.created,
            "vehicles_updated": self.updated,
            "error_message": "; ".join(self.error_messages) or None,
            "execution_time_ms": self.execution_time_ms,
            "started_at": started_at.isoformat(),
            "completed_at": completed_at.isoformat(),
            "metadata": {
                "errors": list(self.error_messages),
                "deactivated": self.deactivated,
            },
        }


@dataclass
class RunReport:
    """Relatório consolidado de uma execução."""
    timestamp: str
    state: str = "idle"
    execution_time_ms: int = 0
    results: List[SourceResult] = field(default_factory=list)
    error_message: Optional[str] = None

    @property
    def success(self) -> bool:
        """Sucesso somente se todos os leiloeiros tiveram sucesso."""
        return self.error_message is None and all(r.success for r in self.results)

    @property
    def summary(self) -> Dict[str, int]:
        return {
            "totalAuctioneers": len(self.results),
            "totalScraped": sum(r.scraped for r in self.results),
            "totalCreated": sum(r.created for r in self.results),
            "totalUpdated": sum(r.updated for r in self.results),
            "totalErrors": sum(r.errors for r in self.results),
        }

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "success": self.success,
            "timestamp": self.timestamp,
            "executionTimeMs": self.execution_time_ms,
            "summary": self.summary,
            "results": [r.to_dict() for r in self.results],
            "state": self.state,
        }
        if self.error_message:
            data["errorMessage"] = self.error_message
        return data

    def to_json(self, pretty: bool = True) -> str:
        indent = 2 if pretty else None
        return json.dumps(self.to_dict(), ensure_ascii=False, indent=indent)
