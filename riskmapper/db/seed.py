"""Idempotent seed data for the questionnaire bank."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker

from riskmapper.core.exceptions import ScoringConfigError
from riskmapper.db.models.question import QuestionDefinition
from riskmapper.scoring import parse_scoring_config

_YES_NO = ["Yes", "Partly", "No"]

QUESTIONS = [
    # ── Context (not scored) ────────────────────────────────────────
    {
        "id": "ctx_team_size",
        "section_id": "context",
        "section_title": "About the business",
        "display_order": 1,
        "text": "How many people work in the business, including founders?",
        "type": "radio",
        "opts": ["Just me", "2-5", "6-20", "More than 20"],
        "risk_name": "Team size",
        "scoring_config": {"type": "radio", "opts": ["Just me", "2-5", "6-20", "More than 20"], "p_scores": [1, 1, 1, 1], "i_scores": [1, 1, 1, 1]},
        "is_scoring": False,
    },
    # ── Finance ─────────────────────────────────────────────────────
    {
        "id": "fin_runway",
        "section_id": "finance",
        "section_title": "Finance",
        "display_order": 10,
        "text": "How many months could the business operate if revenue stopped today?",
        "type": "radio",
        "opts": ["Less than 3", "3-6", "6-12", "More than 12"],
        "risk_name": "Cash runway",
        "risk_desc": "A short runway leaves no room to absorb a slow quarter or a late-paying customer.",
        "hedge": "Build a 13-week cash forecast and agree an overdraft or credit line before you need it.",
        "scoring_config": {"type": "radio", "opts": ["Less than 3", "3-6", "6-12", "More than 12"], "p_scores": [9, 7, 4, 2], "i_scores": [10, 8, 6, 4]},
    },
    {
        "id": "fin_customer_concentration",
        "section_id": "finance",
        "section_title": "Finance",
        "display_order": 11,
        "text": "Does any single customer account for more than 30% of revenue?",
        "type": "radio",
        "opts": _YES_NO,
        "risk_name": "Customer concentration",
        "risk_desc": "Losing one dominant customer would remove a large share of revenue overnight.",
        "hedge": "Set a target cap per customer and put contract renewals for the largest accounts on a calendar.",
        "scoring_config": {"type": "radio", "opts": _YES_NO, "p_scores": [7, 5, 2], "i_scores": [9, 6, 3]},
    },
    {
        "id": "fin_bookkeeping",
        "section_id": "finance",
        "section_title": "Finance",
        "display_order": 12,
        "text": "Are your books reconciled at least monthly?",
        "type": "radio",
        "opts": _YES_NO,
        "risk_name": "Financial visibility",
        "risk_desc": "Stale books hide margin erosion and tax liabilities until they are expensive.",
        "hedge": "Move reconciliation to a fixed monthly slot and review a one-page P&L with an advisor.",
        "scoring_config": {"type": "radio", "opts": _YES_NO, "p_scores": [2, 5, 8], "i_scores": [3, 5, 6]},
    },
    # ── Operations ──────────────────────────────────────────────────
    {
        "id": "ops_key_person",
        "section_id": "operations",
        "section_title": "Operations",
        "display_order": 20,
        "text": "Could the business keep running for a month without its founder?",
        "type": "radio",
        "opts": _YES_NO,
        "risk_name": "Key person dependency",
        "risk_desc": "Critical knowledge and relationships sit with one person.",
        "hedge": "Document the ten tasks only the founder can do and train a deputy on the first three.",
        "scoring_config": {"type": "radio", "opts": _YES_NO, "p_scores": [2, 5, 8], "i_scores": [4, 7, 9]},
    },
    {
        "id": "ops_supplier",
        "section_id": "operations",
        "section_title": "Operations",
        "display_order": 21,
        "text": "Do you have a backup for your most important supplier?",
        "type": "radio",
        "opts": _YES_NO,
        "risk_name": "Supplier dependency",
        "risk_desc": "A single supplier failure halts delivery to customers.",
        "hedge": "Qualify a second supplier and place a small recurring order to keep the relationship warm.",
        "scoring_config": {"type": "radio", "opts": _YES_NO, "p_scores": [2, 4, 6], "i_scores": [3, 6, 8]},
    },
    {
        "id": "ops_incident_plan",
        "section_id": "operations",
        "section_title": "Operations",
        "display_order": 22,
        "text": "Describe what happens if your main system or premises is unavailable for a week.",
        "type": "text",
        "risk_name": "Business continuity",
        "risk_desc": "Without a rehearsed plan, an outage turns into lost customers.",
        "hedge": "Write a one-page continuity plan and run a tabletop exercise once a year.",
        # A thoughtful answer suggests the risk has been considered
        "scoring_config": {"type": "text", "threshold": 80, "p_short": 7, "p_long": 3, "i_short": 8, "i_long": 5},
    },
    # ── Legal & compliance ──────────────────────────────────────────
    {
        "id": "legal_contracts",
        "section_id": "legal",
        "section_title": "Legal & compliance",
        "display_order": 30,
        "text": "Are all customer engagements covered by signed contracts?",
        "type": "radio",
        "opts": _YES_NO,
        "risk_name": "Contract exposure",
        "risk_desc": "Verbal agreements leave payment terms and liability undefined.",
        "hedge": "Adopt a standard terms template and require signature before work starts.",
        "scoring_config": {"type": "radio", "opts": _YES_NO, "p_scores": [2, 5, 7], "i_scores": [3, 6, 7]},
    },
    {
        "id": "legal_data_protection",
        "section_id": "legal",
        "section_title": "Legal & compliance",
        "display_order": 31,
        "text": "Do you hold personal data about customers, and is access to it restricted?",
        "type": "radio",
        "opts": ["No personal data", "Yes, restricted", "Yes, not restricted"],
        "risk_name": "Data protection",
        "risk_desc": "A breach of customer data brings fines and lasting reputational damage.",
        "hedge": "Inventory where personal data lives and remove access for anyone who does not need it.",
        "scoring_config": {"type": "radio", "opts": ["No personal data", "Yes, restricted", "Yes, not restricted"], "p_scores": [1, 3, 7], "i_scores": [1, 7, 9]},
    },
    # ── Market ──────────────────────────────────────────────────────
    {
        "id": "mkt_competition",
        "section_id": "market",
        "section_title": "Market",
        "display_order": 40,
        "text": "What would stop a well-funded competitor from copying your offer?",
        "type": "text",
        "risk_name": "Competitive moat",
        "risk_desc": "An offer that is easy to copy competes on price alone.",
        "hedge": "Invest in one defensible asset: proprietary data, a community or switching costs.",
        "scoring_config": {"type": "text", "threshold": 60, "p_short": 6, "p_long": 4, "i_short": 7, "i_long": 5},
    },
    {
        "id": "mkt_pricing_review",
        "section_id": "market",
        "section_title": "Market",
        "display_order": 41,
        "text": "When did you last review your prices?",
        "type": "radio",
        "opts": ["In the last 6 months", "6-18 months ago", "Longer ago or never"],
        "risk_name": "Pricing drift",
        "risk_desc": "Prices that lag costs quietly erode margin every month.",
        "hedge": "Schedule a pricing review every six months against cost inflation and competitor rates.",
        "scoring_config": {"type": "radio", "opts": ["In the last 6 months", "6-18 months ago", "Longer ago or never"], "p_scores": [2, 5, 8], "i_scores": [3, 5, 6]},
    },
]


async def seed_questions(engine: AsyncEngine) -> int:
    """Insert question definitions that don't already exist.

    Existing rows are left alone so edits made in the database survive restarts.
    Every scoring config is validated before anything is written.
    Returns how many questions were inserted.
    """
    for question in QUESTIONS:
        try:
            parse_scoring_config(question["scoring_config"])
        except ScoringConfigError as exc:
            raise ScoringConfigError(str(exc), question_id=question["id"]) from exc

    factory = async_sessionmaker(engine, expire_on_commit=False)

    async with factory() as session:
        result = await session.execute(select(QuestionDefinition.id))
        existing = set(result.scalars().all())

        missing = [q for q in QUESTIONS if q["id"] not in existing]
        for question_data in missing:
            session.add(QuestionDefinition(**question_data))

        await session.commit()
    return len(missing)
