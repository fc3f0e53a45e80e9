import time
import streamlit as st

from ckicas_sim import CKICASModel, InvalidParameter, CONTROLS, PARAMETER_CONTROLS, control_value, PHASE_LABELS, STOCK_NAMES, ACTIVATION_NAMES
from assistant import AssistantError, request_parameter_changes

PLAY_UNTIL = 365
FULL_RUN_TICKS = 730

st.set_page_config(page_title="CKICAS", layout="wide")
st.title("CKICAS — Community Resilience Dynamics")

if "model" not in st.session_state:
    st.session_state.model = CKICASModel()
    st.session_state.running = False
model = st.session_state.model


def sync_widgets(params):
    # widgets show a clamped copy; the model keeps the exact value until a widget moves
    shown = {key: control_value(key, params[key]) for key in CONTROLS}
    for key, value in shown.items():
        st.session_state[f"p_{key}"] = value
    st.session_state.shown = shown


# assistant changes are applied before any widget is built
pending = st.session_state.pop("pending_changes", None)
if pending:
    try:
        model.configure({**model.params.as_dict(), **pending})
    except InvalidParameter as e:
        st.error(f"Assistant suggestion rejected: {e}")
    st.session_state.running = False
    sync_widgets(model.params.as_dict())
elif "shown" not in st.session_state:
    sync_widgets(model.params.as_dict())

VIEWS = {
    "Stocks": STOCK_NAMES,
    "Stage activation": ACTIVATION_NAMES,
    "Panarchy cycle": ["panarchy_potential", "panarchy_connectedness", "panarchy_resilience", "collapse_risk"],
    "Performance": ["performance_index", "adaptive_capacity", "environmental_pressure"],
}


def reconfigure(overrides):
    model.configure(overrides)
    st.session_state.running = False


with st.sidebar:
    st.header("Parameters")
    edited = {}
    for key, label, lo, hi, step in PARAMETER_CONTROLS:
        if lo is None:
            edited[key] = st.checkbox(label, key=f"p_{key}")
        else:
            edited[key] = st.slider(label, lo, hi, step=step, key=f"p_{key}")
    moved = {k: v for k, v in edited.items() if v != st.session_state.shown[k]}
    if moved:
        reconfigure({**model.params.as_dict(), **moved})
        st.session_state.shown.update(moved)

    st.header("Assistant")
    message = st.text_area("Describe a change", placeholder="A massive crisis should hit at day 100 and last for 25 days")
    if st.button("Ask") and message:
        try:
            reply = request_parameter_changes(message)
        except AssistantError as e:
            st.error(str(e))
        else:
            st.session_state.assistant_summary = reply.summary
            if reply.parameter_changes:
                st.session_state.pending_changes = reply.parameter_changes
                st.rerun()
    if st.session_state.get("assistant_summary"):
        st.info(st.session_state.assistant_summary)

cols = st.columns(4)
if cols[0].button("Pause" if st.session_state.running else "Play"):
    st.session_state.running = not st.session_state.running
if cols[1].button("Step"):
    model.step()
if cols[2].button("Reset"):
    model.reset()
    st.session_state.running = False
if cols[3].button("Run complete"):
    model.reset()
    model.run(FULL_RUN_TICKS)
    st.session_state.running = False

latest = model.latest()
kpi = st.columns(5)
kpi[0].metric("Day", f"{model.time:.1f}")
if latest is not None:
    kpi[1].metric("Performance index", f"{latest.performance_index:.3f}")
    kpi[2].metric("Adaptive capacity", f"{latest.adaptive_capacity:.3f}")
    kpi[3].metric("Crisis mode", f"{latest.crisis_mode:.2f}")
    kpi[4].metric("Panarchy phase", f"{latest.panarchy_phase} ({PHASE_LABELS[latest.panarchy_phase]})")

tabs = st.tabs(list(VIEWS))
df = model.history_frame()
for tab, (name, columns) in zip(tabs, VIEWS.items()):
    with tab:
        if df.empty:
            st.caption("No history yet. Press Play, Step or Run complete.")
        else:
            st.line_chart(df.set_index("time")[columns])

with st.expander("History"):
    st.dataframe(df.round(4))
    st.download_button("Download history CSV", df.to_csv(index=False), "ckicas_history.csv")

if st.session_state.running:
    if model.time >= PLAY_UNTIL:
        st.session_state.running = False
    else:
        model.step()
        time.sleep(0.05)
        st.rerun()
