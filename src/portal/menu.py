# portal/menu.py
MENU = [
    {"label": "Home", "path": "Home.py"},

    {"label": "Documents", "path": None, "children": [
        {"label": "Scan Document", "path": "pages/1_scan_document.py"},
        {"label": "Browse & Edit", "path": "pages/2_documents.py"},
        {"label": "Templates",     "path": "pages/3_templates.py"},
    ]},

    {"label": "Phone Scanner", "path": None, "children": [
        {"label": "QR Upload",     "path": "pages/4_qr_upload.py"},
        {"label": "Mobile Upload", "path": "pages/5_mobile_upload.py"},
    ]},

    {"label": "Analytics", "path": "pages/6_analytics.py"},
]
