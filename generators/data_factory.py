"""
LLM-powered demo data generator for the Continuity Scheduler.
STRATEGY: one request for the provider roster, one for client care plans,
then a deterministic expansion of each plan into session history.

The LLM only decides *who* works with *whom* and at what cadence. Dates,
ids and statuses are computed locally so the data always validates.
"""

import os
import json
import logging
import re
import google.generativeai as genai
from typing import List, Tuple, Dict, Any, Optional
from datetime import datetime, time, timedelta
from pydantic import BaseModel, Field, ValidationError, model_validator

from models import Provider, Team, Session, SessionStatus, SESSION_DURATION

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash"


class ClientPlan(BaseModel):
    """
    A client's care arrangement as proposed by the LLM.
    Expanded into a Team plus completed sessions by expand_plans().
    """
    client_id: str = Field(min_length=1)
    rbt_ids: List[str] = Field(min_length=1)
    primary_rbt_id: str
    sessions_per_week: int = Field(default=2, ge=1, le=3)
    weeks_of_history: int = Field(default=8, ge=0, le=26)
    preferred_hour: int = Field(default=9, ge=9, le=16)
    secondary_every: int = Field(
        default=0, ge=0,
        description="Every Nth session goes to a non-primary provider (0 = never)"
    )
    location: str = Field(default="Home")

    @model_validator(mode='after')
    def validate_primary(self):
        if self.primary_rbt_id not in self.rbt_ids:
            raise ValueError("primary_rbt_id must be one of rbt_ids")
        return self


# Weekday pattern per weekly cadence (0=Mon)
CADENCE_DAYS = {1: [1], 2: [0, 3], 3: [0, 2, 4]}


class DataGenerator:
    def __init__(self, api_key: Optional[str] = None, model_name: str = DEFAULT_MODEL):
        self.api_key = api_key or os.environ.get("GOOGLE_API_KEY")
        if not self.api_key:
            raise ValueError("GOOGLE_API_KEY not found. Please set it in environment.")

        genai.configure(api_key=self.api_key)
        self.model = genai.GenerativeModel(model_name)
        self.total_cost = 0.0

    def _estimate_cost(self, prompt_tokens: int, response_tokens: int) -> float:
        return (prompt_tokens * 0.075 + response_tokens * 0.30) / 1_000_000

    def _robust_parse_json(self, raw_text: str) -> List[Any]:
        """
        Handles Markdown fences and normalizes the payload to a list.
        """
        if not raw_text:
            return []

        # 1. Strip Markdown code fences
        clean_text = re.sub(r"```json\s*|\s*```", "", raw_text).strip()

        try:
            data = json.loads(clean_text)
        except json.JSONDecodeError:
            # Fall back to the outermost JSON array in the text
            match = re.search(r'(\[.*\])', clean_text, re.DOTALL)
            if not match:
                return []
            try:
                data = json.loads(match.group(1))
            except json.JSONDecodeError:
                return []

        # 2. Normalize shape
        if isinstance(data, list):
            return data
        if isinstance(data, dict):
            for key in ['providers', 'clients', 'plans', 'result']:
                if key in data and isinstance(data[key], list):
                    return data[key]
            return [data]
        return []

    def _fetch_batch(self, prompt: str) -> Tuple[List[Dict[str, Any]], float]:
        """
        Executes one generation request. LLM failures are logged and yield
        an empty batch so the caller can fall back to cached data.
        """
        try:
            generation_config = genai.GenerationConfig(
                response_mime_type="application/json",
                max_output_tokens=8000,
                temperature=0.7
            )
            response = self.model.generate_content(prompt, generation_config=generation_config)

            cost = 0.0
            usage = getattr(response, "usage_metadata", None)
            if usage is not None:
                cost = self._estimate_cost(usage.prompt_token_count, usage.candidates_token_count)
            self.total_cost += cost

            items = [item for item in self._robust_parse_json(response.text) if isinstance(item, dict)]
            return items, cost

        except Exception as e:
            logger.error(f"Batch Generation Failed: {e}")
            return [], 0.0

    def generate_providers(self, count: int = 6) -> Tuple[List[Provider], float]:
        prompt = f"""
        Generate {count} Registered Behavior Technicians (RBTs) for an ABA therapy clinic.
        OUTPUT: A single JSON Array of {count} objects.
        FIELDS: "first_name" (string), "last_name" (string), "is_active" (bool).
        RULES:
        - Use realistic, diverse names.
        - At most one provider may have "is_active": false.
        """
        logger.info(f"🚀 Requesting {count} providers...")
        raw, cost = self._fetch_batch(prompt)

        providers = []
        for i, item in enumerate(raw):
            # IDs are assigned locally so plans can reference them
            item["id"] = f"rbt_{i + 1:02d}"
            try:
                providers.append(Provider(**item))
            except ValidationError as e:
                logger.warning(f"Skipping invalid provider {i}: {e.json()}")

        logger.info(f"✅ Generated {len(providers)} providers.")
        return providers, cost

    def generate_client_plans(self, client_count: int, providers: List[Provider]) -> Tuple[List[ClientPlan], float]:
        active_ids = [p.id for p in providers if p.is_active]
        ids_str = json.dumps(active_ids)

        prompt = f"""
        Generate care plans for {client_count} ABA therapy clients.
        OUTPUT: A single JSON Array of {client_count} objects.
        AVAILABLE PROVIDER IDS: {ids_str}
        FIELDS:
        - "client_id": "client_01", "client_02", ... in order.
        - "rbt_ids": 2 to 4 ids taken ONLY from the list above.
        - "primary_rbt_id": one of that client's "rbt_ids".
        - "sessions_per_week": integer 1-3.
        - "weeks_of_history": integer 2-12.
        - "preferred_hour": integer 9-16 (session start hour).
        - "secondary_every": integer 0-5. 0 means the primary covers every session.
        - "location": "Home", "Clinic" or "School".
        LOGIC: Mix strong continuity (secondary_every 0) with fragmented cases (secondary_every 2).
        """
        logger.info(f"🚀 Requesting care plans for {client_count} clients...")
        raw, cost = self._fetch_batch(prompt)

        plans = []
        for i, item in enumerate(raw):
            # Drop hallucinated provider ids before validation
            item["rbt_ids"] = [r for r in item.get("rbt_ids", []) if r in active_ids]
            try:
                plans.append(ClientPlan(**item))
            except ValidationError as e:
                logger.warning(f"Skipping invalid plan {i}: {e.json()}")

        logger.info(f"✅ Generated {len(plans)} client plans.")
        return plans, cost

    def generate_dataset(
        self,
        provider_count: int = 6,
        client_count: int = 5,
        now: Optional[datetime] = None
    ) -> Tuple[Dict[str, List], float]:
        providers, c1 = self.generate_providers(provider_count)
        if not providers:
            return {"providers": [], "teams": [], "sessions": []}, c1
        plans, c2 = self.generate_client_plans(client_count, providers)
        data = expand_plans(plans, now or datetime.now())
        data["providers"] = providers
        return data, c1 + c2


def _is_free(booked: Dict[str, List[datetime]], rbt_id: str, start: datetime) -> bool:
    return all(abs(start - other) >= SESSION_DURATION for other in booked.get(rbt_id, []))


def expand_plans(plans: List[ClientPlan], now: datetime) -> Dict[str, List]:
    """
    Deterministically turn care plans into teams, completed history and
    one upcoming scheduled session per client. No provider is ever given
    two overlapping sessions.
    """
    teams: List[Team] = []
    sessions: List[Session] = []
    booked: Dict[str, List[datetime]] = {}
    today = now.date()
    counter = 0

    for plan in plans:
        teams.append(Team(
            id=f"team_{plan.client_id}",
            client_id=plan.client_id,
            rbt_ids=plan.rbt_ids,
            primary_rbt_id=plan.primary_rbt_id,
            effective_date=today - timedelta(weeks=plan.weeks_of_history + 1),
            created_by="data_factory",
        ))

        secondaries = [r for r in plan.rbt_ids if r != plan.primary_rbt_id]
        monday = today - timedelta(days=today.weekday())

        # 1. Completed history, oldest first
        index = 0
        for week in range(plan.weeks_of_history, 0, -1):
            week_start = monday - timedelta(weeks=week)
            for weekday in CADENCE_DAYS[plan.sessions_per_week]:
                start = datetime.combine(week_start + timedelta(days=weekday), time(plan.preferred_hour))
                rbt_id = plan.primary_rbt_id
                if secondaries and plan.secondary_every and (index + 1) % plan.secondary_every == 0:
                    rbt_id = secondaries[index % len(secondaries)]
                index += 1
                if not _is_free(booked, rbt_id, start):
                    continue
                booked.setdefault(rbt_id, []).append(start)
                counter += 1
                sessions.append(Session(
                    id=f"sess_{counter:04d}",
                    client_id=plan.client_id,
                    rbt_id=rbt_id,
                    start_time=start,
                    end_time=start + SESSION_DURATION,
                    status=SessionStatus.COMPLETED,
                    location=plan.location,
                    created_by="data_factory",
                ))

        # 2. One upcoming session with the primary, first free business day
        day = today + timedelta(days=1)
        while True:
            start = datetime.combine(day, time(plan.preferred_hour))
            if day.weekday() < 5 and _is_free(booked, plan.primary_rbt_id, start):
                break
            day += timedelta(days=1)
        booked.setdefault(plan.primary_rbt_id, []).append(start)
        counter += 1
        sessions.append(Session(
            id=f"sess_{counter:04d}",
            client_id=plan.client_id,
            rbt_id=plan.primary_rbt_id,
            start_time=start,
            end_time=start + SESSION_DURATION,
            location=plan.location,
            created_by="data_factory",
        ))

    return {"teams": teams, "sessions": sessions}
