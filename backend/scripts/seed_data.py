"""
Seed Data Script - Creates indexes, state form templates and a demo authorization
Run: python -m scripts.seed_data
"""
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from priorauth.repositories.mongo_client import create_indexes, get_database
from priorauth.repositories.authorization_repo import AuthorizationRepository
from priorauth.repositories.form_template_repo import FormTemplateRepository
from priorauth.domain.models import Authorization, StateFormTemplate
from priorauth.engine.step_catalog import PRIOR_AUTH_WORKFLOW_STEPS, TOTAL_STEPS
from priorauth.utils.time import utc_now

SEED_STATES = {
    "CA": "California Uniform Prior Authorization Request (61-211)",
    "TX": "Texas Standard Prior Authorization Request (NOFR001)",
    "NY": "New York Prior Authorization Request",
    "FL": "Florida Uniform Prior Authorization Request",
}

DEMO_AUTHORIZATION_ID = "A-1"


def seed_templates(template_repo: FormTemplateRepository) -> None:
    """Register one active prior_auth template per seeded state"""
    existing = {(t.state, t.form_type) for t in template_repo.list_templates()}
    fields = [field for step in PRIOR_AUTH_WORKFLOW_STEPS for field in step.allowed_form_fields]

    for state, form_name in SEED_STATES.items():
        if (state, "prior_auth") in existing:
            print(f"  Template for {state} already present, skipping")
            continue
        template_repo.create_template(StateFormTemplate(
            template_id=f"TPL-{state}-PA",
            state=state,
            form_type="prior_auth",
            form_name=form_name,
            template_path=f"/forms/templates/{state.lower()}_prior_auth.pdf",
            fields=fields,
        ))
        print(f"  Created template for {state}")


def seed_authorization(authorization_repo: AuthorizationRepository) -> None:
    """Demo authorization to walk through the workflow"""
    if authorization_repo.get_authorization(DEMO_AUTHORIZATION_ID):
        print(f"  Authorization {DEMO_AUTHORIZATION_ID} already present, skipping")
        return
    now = utc_now()
    authorization_repo.create_authorization(Authorization(
        authorization_id=DEMO_AUTHORIZATION_ID,
        current_step=1,
        total_steps=TOTAL_STEPS,
        created_at=now,
        updated_at=now,
    ))
    print(f"  Created authorization {DEMO_AUTHORIZATION_ID}")


if __name__ == "__main__":
    print("Creating indexes...")
    create_indexes()

    database = get_database()
    print("Seeding state form templates...")
    seed_templates(FormTemplateRepository(database))
    print("Seeding demo authorization...")
    seed_authorization(AuthorizationRepository(database))
    print("Done!")
