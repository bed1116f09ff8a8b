"""Default checklist instantiated for every new migration.

Each entry carries both identifier schemes: the legacy sequential ``id``
(``q1``…) and the semantic ``questionKey``. ``build_question_template()``
returns fresh dicts so callers may mutate the result.
"""

import copy

YES_NO = ["Yes", "No"]

_TEMPLATE = [
    # Security
    ("q1", "security_secops_confirm", "Security", "checkbox",
     "Confirm SecOps review of Tableau Cloud has been completed", None, {}),
    ("q2", "security_data_connectivity", "Security", "dropdown",
     "How will Tableau Cloud connect to on-premise data?",
     ["Tableau Bridge", "Public endpoints", "Private Connect", "Not yet decided"], {}),
    ("q3", "security_connection_details", "Security", "textInput",
     "Connection details (IP allow-lists, ports, firewall rules)", None,
     {"dependsOn": "security_data_connectivity"}),

    # Communications
    ("q4", "communications_strategy_confirmed", "Communications", "yesNo",
     "Has the end-user communication strategy been confirmed?", YES_NO, {}),
    ("q7", "communications_change_freeze", "Communications", "dateInput",
     "Content change freeze date", None,
     {"infoTooltip": "No new workbooks should be published on Server after this date."}),

    # Access & Connectivity
    ("q9", "access_connection_method", "Access & Connectivity", "dropdown",
     "How will the migration team connect to Tableau Server?",
     ["VPN", "Jumpbox", "Client-provided laptop", "Screen share"], {}),
    ("q10", "access_vpn_required", "Access & Connectivity", "yesNo",
     "Is VPN access required?", YES_NO, {}),
    ("q11", "access_vpn_details", "Access & Connectivity", "textInput",
     "VPN client and account details", None, {"dependsOn": "access_vpn_required"}),

    # Authentication
    ("q17", "auth_sso_enabled", "Authentication", "yesNo",
     "Is SSO used on Tableau Server today?", YES_NO, {}),
    ("q20", "auth_migration_type", "Authentication", "multiSelect",
     "Authentication methods required on Tableau Cloud",
     ["SAML", "OpenID Connect", "Tableau with MFA", "Google", "Salesforce"], {}),
    ("q23", "auth_user_list", "Authentication", "numberInput",
     "Number of licensed users to migrate", None, {"min": 0}),

    # Backup & Disaster Recovery
    ("q25", "backup_tableau_automated", "Backup & Disaster Recovery", "checkbox",
     "Automated Tableau Server backup verified before migration", None, {}),

    # Tableau Cloud
    ("q33", "cloud_sku_type", "Tableau Cloud", "dropdown",
     "Tableau Cloud SKU purchased", ["Standard", "Enterprise", "Tableau+"], {}),
    ("q34", "cloud_site_count", "Tableau Cloud", "numberInput",
     "Number of Tableau Cloud sites", None,
     {"min": 1, "skuLimits": {"Standard": 1, "Enterprise": 3, "Tableau+": 10}}),
    ("q44", "cloud_manager_url", "Tableau Cloud", "textInput",
     "Tableau Cloud Manager URL", None, {}),
    ("q45", "cloud_access_confirmed", "Tableau Cloud", "checkbox",
     "Site administrator access to Tableau Cloud confirmed", None, {}),

    # Tableau Bridge
    ("q46", "bridge_required", "Tableau Bridge", "yesNo",
     "Is Tableau Bridge required?", YES_NO, {}),
    ("q47", "bridge_servers_built", "Tableau Bridge", "checkbox",
     "Bridge servers built and registered to the pool", None, {"dependsOn": "bridge_required"}),
    ("q48", "bridge_expected_date", "Tableau Bridge", "dateInput",
     "Expected Bridge readiness date", None, {"dependsOn": "bridge_required"}),

    # Delta tracking
    ("q70", "delta_users", "Users", "deltaParent",
     "User deltas since the initial migration run", None,
     {"deltaTemplate": {"owner": "IW"}}),
]


def build_question_template() -> list[dict]:
    """Return the default question list, ordered and ready to store."""
    questions = []
    for order, (qid, key, section, qtype, text, options, metadata) in enumerate(_TEMPLATE, start=1):
        question = {
            "id": qid,
            "questionKey": key,
            "section": section,
            "questionText": text,
            "questionType": qtype,
            "order": order,
            "answer": None,
            "completed": False,
            "metadata": copy.deepcopy(metadata),
        }
        if options is not None:
            question["options"] = list(options)
        if qtype == "deltaParent":
            question["deltas"] = []
        questions.append(question)
    return questions
