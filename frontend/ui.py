"""
Streamlit frontend for SWAAKON.

Posts the candidate course to POST http://localhost:8000/compare, then
narrows the ranked list through POST /filter and asks POST /explain for an
overlap explanation of one course at a time.
"""

import requests
import streamlit as st

API_URL = "http://localhost:8000"

FIELD_LABELS = {
    "level": "Studienivå",
    "language": "Språk",
    "credits": "Studiepoeng",
    "semester": "Semester",
    "portfolio": "Portfolio",
    "area": "Område",
    "coordinator": "Koordinator",
    "institute": "Institutt",
}

st.set_page_config(page_title="SWAAKON", layout="wide")
st.title("SWAAKON — course overlap")


def _post(path: str, payload: dict, timeout: float = 90) -> dict | None:
    try:
        resp = requests.post(f"{API_URL}{path}", json=payload, timeout=timeout)
    except requests.exceptions.ConnectionError:
        st.error("Cannot reach the API. Start it with: python app/app.py")
        return None
    if not resp.ok:
        try:
            detail = resp.json().get("detail", resp.text)
        except ValueError:
            detail = resp.text
        st.error(f"API error ({resp.status_code}): {detail}")
        return None
    return resp.json()


with st.form("compare"):
    name = st.text_input("Course name")
    description = st.text_area("Course description", height=200)
    literature = st.text_area("Literature (optional)", height=100)
    submitted = st.form_submit_button("Compare")

if submitted:
    payload = {"name": name, "description": description,
               "literature": literature or None,
               "session": st.session_state.get("session")}
    with st.spinner("Comparing…"):
        data = _post("/compare", payload)
    if data and not data["stale"]:
        st.session_state["session"] = data["session"]

session = st.session_state.get("session")

if session:
    try:
        options = requests.get(f"{API_URL}/filters/{session}", timeout=30).json()
    except requests.exceptions.RequestException:
        options = {}

    with st.sidebar:
        st.header("Filtrer kurs")
        similarity_range = st.slider("Likhet (%)", 0, 100, (0, 100))
        filters: dict = {"similarity_range": list(similarity_range)}
        for field, label in FIELD_LABELS.items():
            values = options.get(field) or []
            if values:
                filters[field] = st.multiselect(label, values)

    search_term = st.text_input("Søk i resultater")
    data = _post("/filter", {"session": session, "search_term": search_term, "filters": filters})

    if data:
        results = data["results"]
        st.caption(f"{len(results)} of {data['total']} courses")
        st.dataframe(
            [
                {
                    "Kurs": f"{r['code']} {r['name']}",
                    "Likhet": r["similarity"],
                    "Studiepoeng": r.get("credits") or "",
                    "Studienivå": r.get("level") or "",
                    "Språk": r.get("language") or "",
                    "Semester": r.get("semester") or "",
                }
                for r in results
            ],
            use_container_width=True,
            hide_index=True,
        )

        codes = [r["code"] for r in results]
        if codes:
            code = st.selectbox("AI-analyse for kurs", codes)
            if st.button("Forklar overlapp"):
                with st.spinner("Genererer analyse…"):
                    explained = _post("/explain", {"session": session, "course_code": code})
                if explained:
                    st.markdown(explained["explanation"])
