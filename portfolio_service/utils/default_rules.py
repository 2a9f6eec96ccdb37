"""
Hardcoded classification rule definitions.
These are the default status vocabulary; callers can pass their own dict in
the same format to RuleRegistry.from_definitions.

Rule Types:
- Status rules: 'status_names' / 'status_ids', a record matches if EITHER its
  status name or its status id is listed
- Composite rules: 'criteria' combining other rules with 'and' / 'or' / 'not'

applies_to:
- 'policy': evaluated against policy records
- 'claim': evaluated against claim records

The status names and ids below come from the policy administration system's
reporting extracts and must be confirmed against reference data before the
numbers are relied on.
"""

DEFAULT_RULES = {
    # ==========================================================================
    # Policy status rules
    # ==========================================================================
    'ACTIVE_POLICY': {
        'applies_to': 'policy',
        'status_names': ['Aktiv'],
        'status_ids': [3],
        'description': 'Active policies',
    },
    'RENEWED_POLICY': {
        'applies_to': 'policy',
        'status_names': ['Fornyet'],
        'status_ids': [12],
        'description': 'Renewed policies',
    },
    'EXPIRED_POLICY': {
        'applies_to': 'policy',
        'status_names': ['Utgått'],
        'status_ids': [4],
        'description': 'Expired policies',
    },
    'FUTURE_POLICY': {
        'applies_to': 'policy',
        'status_names': ['Fremtidig'],
        'status_ids': [],
        'description': 'Policies not yet in force at the view date (reconstructed only)',
    },
    'EXCLUDED_POLICY': {
        'applies_to': 'policy',
        'status_names': ['Endret', 'Kansellert', 'Produsert'],
        'status_ids': [5, 6, 10],
        'description': 'Statuses excluded from portfolio analysis',
    },
    'PORTFOLIO_POLICY': {
        'applies_to': 'policy',
        'status_names': ['Aktiv', 'Utgått', 'Fornyet', 'Endret'],
        'status_ids': [3, 4, 12, 5],
        'description': 'Policies valid for portfolio analysis',
    },
    'PORTFOLIO_POLICY_LAST_12_MONTHS': {
        'applies_to': 'policy',
        'status_names': ['Aktiv', 'Utgått'],
        'status_ids': [3, 4],
        'description': 'Policies valid for windows of at most 12 months (renewals would double count)',
    },
    'PORTFOLIO_POLICY_HISTORICAL': {
        'applies_to': 'policy',
        'status_names': ['Aktiv', 'Utgått', 'Fornyet'],
        'status_ids': [3, 4, 12],
        'description': 'Policies valid for windows reaching more than 12 months back',
    },
    'IN_FORCE_POLICY': {
        'applies_to': 'policy',
        'criteria': {'or': [
            {'rule': 'ACTIVE_POLICY'},
            {'rule': 'RENEWED_POLICY'},
        ]},
        'description': 'Active or renewed',
    },
    'EARNING_POLICY': {
        'applies_to': 'policy',
        'criteria': {'and': [
            {'rule': 'PORTFOLIO_POLICY_HISTORICAL'},
            {'not': {'rule': 'FUTURE_POLICY'}},
        ]},
        'description': 'Policies that contribute earned premium',
    },

    # ==========================================================================
    # Claim status rules
    # ==========================================================================
    'VALID_CLAIM': {
        'applies_to': 'claim',
        'status_names': ['Åpen', 'Under behandling', 'Avsluttet', 'Gjenåpnet'],
        'status_ids': [],
        'description': 'Claims counted in claim cost',
    },
    'MISCODED_CLAIM': {
        'applies_to': 'claim',
        'status_names': ['Feilregistrert'],
        'status_ids': [],
        'description': 'Claims registered by mistake, never counted',
    },
    'OPEN_CLAIM': {
        'applies_to': 'claim',
        'status_names': ['Åpen', 'Under behandling', 'Gjenåpnet'],
        'status_ids': [],
        'description': 'Claims not yet closed',
    },
}

# Products whose claims are left out of claim analysis (guarantee business)
EXCLUDED_CLAIM_PRODUCTS = ['Garanti - Gar-Bo', 'Garanti', 'Betalingsgaranti - Gar-Bo']

DEFAULT_POLICY_RULE = 'PORTFOLIO_POLICY'
DEFAULT_CLAIM_RULE = 'VALID_CLAIM'
