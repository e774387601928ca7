"""
Event Store service for append-only audit logging.

All state mutations MUST be logged here BEFORE commit.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel
from sqlalchemy import select, and_, desc, func
from sqlalchemy.ext.asyncio import AsyncSession

from src.kernel.models.event_log import EventLog, EventType
from src.logging_config import get_request_id


class EventStore:
    """
    Service for managing the immutable event log.
    
    Usage:
        event_store = EventStore(session)
        await event_store.log(
            event_type=EventType.RESOURCE_ASSIGNED,
            entity_type="project",
            entity_id=project.id,
            actor="cli",
            payload={"resource": "agent:1f3e..."},
        )
    """
    
    def __init__(self, session: AsyncSession):
        self.session = session
    
    async def log(
        self,
        event_type: EventType,
        entity_type: str,
        entity_id: Union[int, str],
        actor: Optional[str] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> EventLog:
        """
        Log an event to the immutable audit log.
        
        This MUST be called before committing any state change. The row is
        only added to the session; the caller's transaction decides whether
        it is committed or rolled back together with the change it describes.
        
        Args:
            event_type: The type of event
            entity_type: The type of entity (project, agent, rule, hook, dependency)
            entity_id: The ID of the entity
            actor: Who triggered the event (optional for system events)
            payload: Additional event data
            
        Returns:
            The created EventLog record
        """
        if payload:
            payload = self._serialize_payload(payload)
        
        event = EventLog(
            event_type=event_type,
            entity_type=entity_type,
            entity_id=str(entity_id),
            actor=actor,
            payload=payload or {},
            request_id=get_request_id(),
        )
        
        self.session.add(event)
        return event
    
    async def log_from_model(
        self,
        event_type: EventType,
        entity_type: str,
        entity_id: Union[int, str],
        actor: Optional[str],
        payload_model: BaseModel,
    ) -> EventLog:
        """Log an event using a Pydantic model as payload."""
        payload = payload_model.model_dump(mode="json")
        return await self.log(
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            actor=actor,
            payload=payload,
        )
    
    async def get_entity_history(
        self,
        entity_type: str,
        entity_id: Union[int, str],
        event_types: Optional[List[EventType]] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[EventLog]:
        """
        Get the event history for a specific entity, newest first.
        """
        query = select(EventLog).where(
            and_(
                EventLog.entity_type == entity_type,
                EventLog.entity_id == str(entity_id),
            )
        )
        
        if event_types:
            query = query.where(EventLog.event_type.in_(event_types))
        
        query = query.order_by(desc(EventLog.created_at)).offset(offset).limit(limit)
        
        result = await self.session.execute(query)
        return list(result.scalars().all())
    
    async def count_events(
        self,
        entity_type: Optional[str] = None,
        entity_id: Optional[Union[int, str]] = None,
        event_type: Optional[EventType] = None,
        since: Optional[datetime] = None,
    ) -> int:
        """Count events matching the given criteria."""
        query = select(func.count(EventLog.id))
        
        if entity_type:
            query = query.where(EventLog.entity_type == entity_type)
        if entity_id is not None:
            query = query.where(EventLog.entity_id == str(entity_id))
        if event_type:
            query = query.where(EventLog.event_type == event_type)
        if since:
            query = query.where(EventLog.created_at >= since)
        
        result = await self.session.execute(query)
        return result.scalar() or 0
    
    @staticmethod
    def _serialize_payload(payload: Dict[str, Any]) -> Dict[str, Any]:
        """Ensure all payload values are JSON-serializable."""
        result = {}
        for key, value in payload.items():
            if isinstance(value, datetime):
                result[key] = value.isoformat()
            elif isinstance(value, BaseModel):
                result[key] = value.model_dump(mode="json")
            elif isinstance(value, dict):
                result[key] = EventStore._serialize_payload(value)
            elif isinstance(value, (list, tuple)):
                result[key] = [
                    v.model_dump(mode="json") if isinstance(v, BaseModel)
                    else v.isoformat() if isinstance(v, datetime)
                    else v
                    for v in value
                ]
            elif hasattr(value, "value"):  # Enum
                result[key] = value.value
            else:
                result[key] = value
        return result
