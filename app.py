"""
app.py - Streamlit entrypoint for SplitEase

    streamlit run app.py

Secrets configured on Streamlit Cloud (Google Sheets id and service account,
data file, default currency) are exported to the environment before the
dashboard builds its ledger store.
"""
import logging

import streamlit as st

from splitease import config
from splitease.ui import dashboard

try:
    config.export_secrets(st.secrets)
except Exception:
    # no secrets file: settings come from the plain environment
    logging.getLogger(__name__).debug("Streamlit secrets unavailable; using environment only")


def main():
    dashboard.main()


if __name__ == "__main__":
    main()
