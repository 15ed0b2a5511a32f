"""
Main Execution Script for the Continuity Scheduler.
Loads (or generates) a clinic roster, then walks through a rescheduling
scenario end to end: options, impact, execution and audit trail.
"""

import os
import sys
import logging
import json
from datetime import datetime
from typing import Dict, List, Optional

# Add current directory to path so imports work
sys.path.append(os.path.dirname(os.path.abspath(__file__)))

from generators.data_factory import DataGenerator
from models import (
    Provider,
    Team,
    Session,
    SessionStatus,
    ReschedulingPreferences,
    AuditEntityType,
)
from scheduler.config import load_config
from scheduler.engine import SchedulingEngine
from scheduler.state import (
    InMemorySessionRepository,
    InMemoryTeamRepository,
    InMemoryProviderRepository,
    InMemoryAuditEventRepository,
)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler()]
)
logger = logging.getLogger("Main")

# --- CONFIGURATION ---
CACHE_FILENAME = "debug_data.json"
REPORT_FILENAME = "rescheduling_report.json"
USE_CACHE = True  # Set to False to force new AI generation
API_KEY = os.environ.get("GOOGLE_API_KEY")
# ---------------------


def save_debug_data(data: Dict[str, List], filename: str):
    """Save generated data so we don't re-query the LLM every time."""
    serializable = {key: [item.model_dump(mode='json') for item in val] for key, val in data.items()}
    with open(filename, 'w') as f:
        json.dump(serializable, f, indent=2)
    logger.info(f"💾 Saved debug data to {filename}")


def load_cached_data(filename: str) -> Optional[Dict[str, List]]:
    """
    Load JSON data and re-hydrate the Pydantic models.
    """
    try:
        with open(filename, 'r') as f:
            raw = json.load(f)
    except (FileNotFoundError, json.JSONDecodeError):
        logger.warning(f"⚠️ Cache file {filename} not found or invalid. Falling back to Generator.")
        return None

    logger.info(f"📂 Loading cached data from {filename}...")
    data = {
        "providers": [Provider(**item) for item in raw.get("providers", [])],
        "teams": [Team(**item) for item in raw.get("teams", [])],
        "sessions": [Session(**item) for item in raw.get("sessions", [])],
    }
    logger.info(f"✅ Cache Loaded: {len(data['providers'])} providers, {len(data['sessions'])} sessions.")
    return data


def build_engine(data: Dict[str, List]) -> SchedulingEngine:
    return SchedulingEngine(
        sessions=InMemorySessionRepository(data["sessions"]),
        teams=InMemoryTeamRepository(data["teams"]),
        providers=InMemoryProviderRepository(data["providers"]),
        audit_events=InMemoryAuditEventRepository(),
        config=load_config(),
    )


def export_report(report: dict, filename: str):
    logger.info(f"💾 Exporting rescheduling report to {filename}...")
    with open(filename, 'w') as f:
        json.dump(report, f, indent=2, default=str)
    logger.info("✅ Report exported.")


def main():
    logger.info("🚀 Starting Continuity Scheduler Demo...")

    # --- PHASE 1: DATA ACQUISITION (Cache vs. GenAI) ---
    data = load_cached_data(CACHE_FILENAME) if USE_CACHE else None

    if not data or not data["sessions"]:
        if not API_KEY:
            logger.error("❌ GOOGLE_API_KEY not found. Please set it via 'export GOOGLE_API_KEY=...'")
            return
        logger.info("--- Phase 1: Generative AI Data Fetch ---")
        generator = DataGenerator(api_key=API_KEY)
        data, cost = generator.generate_dataset(provider_count=6, client_count=5)
        logger.info(f"💸 Total Estimated LLM Cost: ${cost:.4f}")
        save_debug_data(data, CACHE_FILENAME)

    if not data["sessions"]:
        logger.error("❌ No data available. Exiting.")
        return

    engine = build_engine(data)
    now = datetime.now()

    # --- PHASE 2: RESCHEDULING OPTIMIZATION ---
    upcoming = sorted(
        (s for s in data["sessions"] if s.status == SessionStatus.SCHEDULED and s.start_time > now),
        key=lambda s: s.start_time
    )
    if not upcoming:
        logger.error("❌ No upcoming sessions to reschedule. Regenerate the data.")
        return

    target = upcoming[0]
    logger.info(f"\n--- Phase 2: Rescheduling {target.id} ({target.client_id} with {target.rbt_id}) ---")

    result = engine.find_rescheduling_options(
        target.id,
        reason="Client illness",
        preferences=ReschedulingPreferences(allow_different_rbt=True, prioritize_continuity=True),
    )

    print("\n" + "=" * 50)
    print("📊 RESCHEDULING OPTIONS")
    print("=" * 50)
    print(result.message)
    for option in result.recommended_options:
        print(f"#{option.rank} {option.start_time:%a %Y-%m-%d %H:%M} with {option.rbt_name} "
              f"(score {option.optimization_score:.1f}) - {option.reason_for_recommendation}")

    metrics = result.optimization_metrics
    print(f"\nEvaluated {metrics.total_options_evaluated} candidates from {metrics.slots_checked} slots "
          f"in {metrics.processing_time_ms:.1f} ms; continuity preserved in "
          f"{metrics.continuity_preservation_rate:.0%} of recommendations.")

    # --- PHASE 3: IMPACT + EXECUTION ---
    report = {"session": target.model_dump(mode='json'), "result": result.model_dump(mode='json')}

    if result.recommended_options:
        best = result.recommended_options[0]
        impact = engine.analyze_rescheduling_impact(target.id, best.start_time, best.rbt_id)
        print(f"\n🔍 Impact of top option: {len(impact.affected_sessions)} nearby sessions, "
              f"{impact.notification_count} notifications, complexity {impact.operational_complexity:.0f}")

        execution = engine.execute_option(target.id, best, reason="Client illness", rescheduled_by="demo_runner")
        print(f"{'✅' if execution.success else '❌'} {execution.message}")
        report["execution"] = execution.model_dump(mode='json')

    # --- PHASE 4: CONTINUITY + AUDIT ---
    history = engine.sessions.find_by_client_id(target.client_id)
    team = engine.teams.find_active_by_client_id(target.client_id)
    continuity = engine.scorer.generate_continuity_metrics(target.client_id, history, team.rbt_ids if team else [])
    print(f"\n🤝 {target.client_id}: {continuity.total_sessions} completed sessions, "
          f"{continuity.unique_rbts} providers, trend {continuity.trend.value}")

    trail = engine.get_audit_trail(AuditEntityType.CLIENT, target.client_id)
    print("\n📝 AUDIT TRAIL")
    for entry in trail.events:
        print(f"   {entry.timestamp:%H:%M:%S} {entry.description}")

    report["continuity"] = continuity.model_dump(mode='json')
    report["audit_trail"] = trail.model_dump(mode='json')
    export_report(report, REPORT_FILENAME)

    print("\n✅ Demo Complete.")


if __name__ == "__main__":
    main()
