#!/usr/bin/env python
"""Seed development database with shared fixture data.

Seeds the shared USER MANUAL nexus, the system CORE meta tag, stored
model prices and the system prompt templates for local UI testing.

Constraints:
- Refuses to run in staging or prod (NEXUSTECH_ENV check)
- Idempotent: existing rows are left untouched
- Never runs automatically (manual invocation only)

Usage:
    cd python && DATABASE_URL=... python ../scripts/seed_dev.py
"""

import os
import sys

MANUAL_NOTEBOOK_NAME = "Getting started"

SEED_MODEL_PRICES = [
    ("meta-llama/llama-3.1-70b-instruct", 0.52, 0.75),
    ("mistralai/mistral-large", 2.0, 6.0),
]


def _topic_placeholder(name: str, label: str, description: str) -> dict:
    return {
        "name": name,
        "label": label,
        "type": "textarea",
        "description": description,
        "optional": False,
    }


SEED_PROMPT_TEMPLATES = [
    {
        "name": "Knowledge Graph",
        "description": "Create a knowledge graph of key terms for any given topic",
        "icon": "\U0001f578\ufe0f",
        "template_content": (
            "Conduct an exhaustive domain analysis of [SPECIFIC TOPIC HERE], identifying its "
            "core ontological concepts, primary sub-domains, and the foundational theories or "
            "principles underpinning each. For each sub-domain, provide a concise definition, "
            "list at least three key terms unique to it, and propose a conceptual mapping to "
            "the main topic and other sub-domains. Structure the output as a hierarchical "
            "knowledge graph with a narrative summary of the interdependencies."
        ),
        "placeholders": [
            _topic_placeholder(
                "SPECIFIC_TOPIC_HERE",
                "Topic to Analyze",
                "Enter the specific topic, concept, or domain you want to analyze",
            )
        ],
    },
    {
        "name": "History",
        "description": "Generate context for a key historical figure or event",
        "icon": "\U0001f4da",
        "template_content": (
            "Perform a comprehensive landscape scan of [SPECIFIC TOPIC HERE], delineating its "
            "historical evolution, current state, and projected future trajectories. For each "
            "phase, identify the most significant breakthroughs, influential figures, and "
            "prevalent methodologies, and define at least five critical terms. Conclude with a "
            "map that categorizes these terms by their relevance to the topic."
        ),
        "placeholders": [
            _topic_placeholder(
                "SPECIFIC_TOPIC_HERE",
                "Historical Topic",
                "Enter the historical figure, event, or concept you want to analyze",
            )
        ],
    },
    {
        "name": "Social Analysis",
        "description": "Conduct an in-depth social analysis of a given idea or technology",
        "icon": "\U0001f30d",
        "template_content": (
            "Conduct a comprehensive ethical and societal impact assessment of [SPECIFIC "
            "TECHNOLOGY/CONCEPT HERE], identifying its primary stakeholders, potential "
            "benefits, and anticipated risks. Structure the output as a risk-benefit matrix "
            "with the relevant ethical frameworks and the trade-offs that need policy attention."
        ),
        "placeholders": [
            _topic_placeholder(
                "SPECIFIC TECHNOLOGY/CONCEPT HERE",
                "Technology or Concept",
                "Enter the technology, concept, or innovation you want to analyze",
            )
        ],
    },
    {
        "name": "Practical Implementation",
        "description": "Get practical information on how to apply a technology or methodology",
        "icon": "\u2699\ufe0f",
        "template_content": (
            "Perform a detailed application and implementation analysis of [SPECIFIC "
            "TECHNOLOGY/METHODOLOGY HERE], identifying its core use cases, implementation "
            "challenges, and supporting tools. For each use case, describe its workflow, "
            "prerequisites, and at least three success metrics. Conclude with an "
            "implementation readiness map with initial mitigation strategies."
        ),
        "placeholders": [
            _topic_placeholder(
                "SPECIFIC TECHNOLOGY/METHODOLOGY HERE",
                "Technology or Methodology",
                "Enter the technology, methodology, or approach you want to implement",
            )
        ],
    },
    {
        "name": "Legal",
        "description": "Find the legal constraints governing a particular industry or technology",
        "icon": "\u2696\ufe0f",
        "template_content": (
            "Perform an in-depth analysis of the regulatory and legal landscape surrounding "
            "[SPECIFIC INDUSTRY/TECHNOLOGY HERE], identifying the key legislative acts, "
            "regulatory bodies, and legal precedents. For each regulatory area, detail its "
            "core provisions, enforcement bodies, and at least three compliance requirements. "
            "Conclude with a compliance framework that highlights regulatory uncertainty."
        ),
        "placeholders": [
            _topic_placeholder(
                "SPECIFIC INDUSTRY/TECHNOLOGY HERE",
                "Industry or Technology",
                "Enter the industry, technology, or domain you want to analyze",
            )
        ],
    },
]


def main():
    # 1. Environment check (hard fail in staging/prod)
    env = os.getenv("NEXUSTECH_ENV", "local")
    if env not in ("local", "test"):
        print(f"ERROR: seed_dev.py refuses to run in NEXUSTECH_ENV={env}")
        sys.exit(1)

    # 2. Check DATABASE_URL
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        print("ERROR: DATABASE_URL environment variable must be set")
        sys.exit(1)

    from sqlalchemy import select

    from nexustech.config import get_settings
    from nexustech.db.models import (
        ContentType,
        LLMModelPricing,
        LocusType,
        Nexus,
        Notebook,
        PromptTemplate,
    )
    from nexustech.db.session import get_session_factory
    from nexustech.services.chunks import ensure_core_meta_tag
    from nexustech.services.content_items import append_content_item

    manual_name = get_settings().shared_manual_nexus_name

    db = get_session_factory()()
    try:
        # 3. Shared manual nexus with one notebook
        manual = db.scalar(
            select(Nexus).where(Nexus.name == manual_name, Nexus.owner_id.is_(None))
        )
        manual_created = manual is None
        if manual_created:
            manual = Nexus(name=manual_name, description="How to use Nexustech", order=0)
            db.add(manual)
            db.flush()
            notebook = Notebook(nexus_id=manual.id, name=MANUAL_NOTEBOOK_NAME, order=0)
            db.add(notebook)
            db.flush()
            append_content_item(
                db,
                locus_id=str(manual.id),
                locus_type=LocusType.nexus,
                content_type=ContentType.notebook,
                content_id=str(notebook.id),
                owner_id=None,
            )

        # 4. System CORE meta tag
        core = ensure_core_meta_tag(db)

        # 5. Stored model prices
        prices_created = 0
        for model_id, input_cost, output_cost in SEED_MODEL_PRICES:
            exists = db.scalar(
                select(LLMModelPricing).where(LLMModelPricing.model_id == model_id)
            )
            if exists is None:
                db.add(
                    LLMModelPricing(
                        model_id=model_id,
                        input_token_cost_per_million=input_cost,
                        output_token_cost_per_million=output_cost,
                    )
                )
                prices_created += 1

        # 6. System prompt templates (matched by name)
        templates_created = 0
        for template in SEED_PROMPT_TEMPLATES:
            exists = db.scalar(
                select(PromptTemplate).where(
                    PromptTemplate.name == template["name"],
                    PromptTemplate.is_system_defined.is_(True),
                )
            )
            if exists is None:
                db.add(PromptTemplate(is_system_defined=True, owner_id=None, **template))
                templates_created += 1

        db.commit()
    finally:
        db.close()

    # 7. Report
    db_display = database_url.split("@")[1] if "@" in database_url else database_url
    print(f"Database: {db_display}")
    print(f"NEXUSTECH_ENV: {env}")
    print()
    print(f"{'✓ Created' if manual_created else '• Exists'}: nexus {manual.id} ({manual_name})")
    print(f"• Meta tag: {core.name} {core.id}")
    print(f"✓ Model prices created: {prices_created}")
    print(f"✓ Prompt templates created: {templates_created}")


if __name__ == "__main__":
    main()
