"""Streamlit operator console that consumes the scheduling services."""

from datetime import datetime, time, timedelta
from decimal import Decimal

import pandas as pd
import plotly.express as px
import streamlit as st

from surgery_scheduling import (
    DatabaseConnectionError,
    HospitalService,
    SchedulingError,
    SurgeryRequest,
    SurgeryScheduler,
    SurgeryStatus,
    TheaterStatus,
    TransactionCoordinator,
    ValidationError,
    create_database_engine,
    init_db,
    make_session_factory,
)
from surgery_scheduling.logging_config import configure_logging

STATUS_COLORS = {
    TheaterStatus.AVAILABLE.value: "#2a9d5c",
    TheaterStatus.OCCUPIED.value: "#d1495b",
    TheaterStatus.MAINTENANCE.value: "#edae49",
}


@st.cache_resource
def get_coordinator() -> TransactionCoordinator:
    configure_logging()
    engine = create_database_engine()
    init_db(engine)
    return TransactionCoordinator(make_session_factory(engine))


def render_dashboard(coordinator: TransactionCoordinator, scheduler: SurgeryScheduler) -> None:
    st.subheader("Theater board")

    with coordinator.atomic() as session:
        theaters = HospitalService(session).list_theaters()
    surgeries = scheduler.list_surgeries()
    active = [s for s in surgeries if s.status in (SurgeryStatus.SCHEDULED, SurgeryStatus.IN_PROGRESS)]

    col1, col2, col3 = st.columns(3)
    col1.metric("Theaters available", sum(t.status is TheaterStatus.AVAILABLE for t in theaters))
    col2.metric("Active bookings", len(active))
    col3.metric("Completed surgeries", sum(s.status is SurgeryStatus.COMPLETED for s in surgeries))

    if not theaters:
        st.info("No operating theaters yet.")
        return

    df = pd.DataFrame([{"status": t.status.value} for t in theaters])
    status_counts = df.groupby("status").size().reset_index(name="theaters")
    left_space, chart_bridge, right_space = st.columns([1, 2, 1])
    with chart_bridge:
        fig = px.bar(
            status_counts,
            x="status",
            y="theaters",
            text="theaters",
            color="status",
            color_discrete_map=STATUS_COLORS,
        )
        fig.update_traces(
            width=0.35,
            hovertemplate="%{x}<br>Theaters: %{y}<extra></extra>",
            textposition="outside",
        )
        fig.update_layout(
            xaxis_title="Status",
            yaxis_title="Theaters",
            yaxis=dict(showgrid=False, tick0=0, dtick=1, rangemode="tozero"),
            plot_bgcolor="white",
            paper_bgcolor="white",
            showlegend=False,
            margin=dict(t=40, b=40, l=10, r=10),
            bargap=0.5,
            width=720,
        )
        st.plotly_chart(fig, use_container_width=False, height=350)


def render_create_entities(coordinator: TransactionCoordinator) -> None:
    st.subheader("Records")

    with st.expander("New operating theater"):
        with st.form("create_theater"):
            name = st.text_input("Name", key="theater_name")
            floor = st.number_input("Floor", min_value=0, step=1, key="theater_floor")
            capacity = st.number_input("Capacity", min_value=0, step=1, key="theater_capacity")
            if st.form_submit_button("Create theater"):
                try:
                    with coordinator.atomic() as session:
                        HospitalService(session).create_theater(
                            name=name, floor=int(floor), capacity=int(capacity)
                        )
                    st.success("Operating theater created")
                except ValidationError as exc:
                    st.warning(str(exc))
                except SchedulingError as exc:
                    st.error(f"Create failed: {exc}")

    with st.expander("New doctor"):
        with st.form("create_doctor"):
            name = st.text_input("Name", key="doctor_name")
            contact = st.text_input("Contact number", key="doctor_contact")
            address = st.text_area("Address", key="doctor_address", height=60)
            if st.form_submit_button("Create doctor"):
                try:
                    with coordinator.atomic() as session:
                        HospitalService(session).create_doctor(
                            name=name, contact_no=contact or None, address=address or None
                        )
                    st.success("Doctor created")
                except ValidationError as exc:
                    st.warning(str(exc))
                except SchedulingError as exc:
                    st.error(f"Create failed: {exc}")

    with st.expander("New patient"):
        with st.form("create_patient"):
            name = st.text_input("Name", key="patient_name")
            contact = st.text_input("Contact number", key="patient_contact")
            address = st.text_area("Address", key="patient_address", height=60)
            deposit = st.number_input("Deposit", min_value=0.0, step=50.0, key="patient_deposit")
            if st.form_submit_button("Create patient"):
                try:
                    with coordinator.atomic() as session:
                        HospitalService(session).create_patient(
                            name=name,
                            contact_no=contact or None,
                            address=address or None,
                            deposit=Decimal(str(deposit)),
                        )
                    st.success("Patient created")
                except ValidationError as exc:
                    st.warning(str(exc))
                except SchedulingError as exc:
                    st.error(f"Create failed: {exc}")


def render_scheduling(coordinator: TransactionCoordinator, scheduler: SurgeryScheduler) -> None:
    st.subheader("Surgery scheduling")

    with coordinator.atomic() as session:
        service = HospitalService(session)
        patients = service.list_patients()
        doctors = service.list_doctors()

    if not patients or not doctors:
        st.info("Add patients and doctors before scheduling surgery.")
        return

    patient_options = {f"{p.name} (#{p.id}, deposit {p.deposit})": p.id for p in patients}
    doctor_options = {
        f"{d.name} (#{d.id}){'' if d.is_available else ' - booked'}": d.id for d in doctors
    }

    with st.form("schedule_surgery"):
        patient_display = st.selectbox("Patient", list(patient_options.keys()))
        doctor_display = st.selectbox("Surgeon", list(doctor_options.keys()))
        surgery_type = st.text_input("Procedure")
        surgery_date = st.date_input("Date", value=datetime.now().date() + timedelta(days=1))
        surgery_time = st.time_input("Time", value=time(9, 0))
        duration = st.number_input("Estimated duration (minutes)", min_value=1, value=60, step=15)
        deposit_required = st.number_input("Deposit required", min_value=0.01, value=100.0, step=50.0)
        notes = st.text_area("Notes", height=80)
        if st.form_submit_button("Book surgery"):
            try:
                surgery = scheduler.schedule(
                    SurgeryRequest(
                        patient_id=patient_options[patient_display],
                        doctor_id=doctor_options[doctor_display],
                        surgery_type=surgery_type,
                        scheduled_at=datetime.combine(surgery_date, surgery_time),
                        estimated_duration=int(duration),
                        deposit_required=Decimal(str(deposit_required)),
                        notes=notes or None,
                    )
                )
                st.success(
                    f"Surgery #{surgery.id} booked in {surgery.operating_theater.name}"
                )
            except ValidationError as exc:
                st.warning(str(exc))
            except SchedulingError as exc:
                st.error(f"Booking failed: {exc}")

    st.markdown("#### Bookings")
    status_options = {"All": None}
    status_options.update({status.value: status for status in SurgeryStatus})
    selected = st.selectbox("Filter by status", list(status_options.keys()))

    for surgery in scheduler.list_surgeries(status=status_options[selected]):
        col_info, col_start, col_complete, col_cancel = st.columns([5, 1, 1, 1])
        col_info.write(
            f"#{surgery.id} | {surgery.surgery_type} | patient: {surgery.patient.name} | "
            f"surgeon: {surgery.doctor.name} | theater: {surgery.operating_theater.name} | "
            f"{surgery.scheduled_at:%Y-%m-%d %H:%M} | {surgery.status.value}"
        )
        actions = []
        if surgery.status is SurgeryStatus.SCHEDULED:
            actions.append((col_start, "Start", scheduler.start))
            actions.append((col_cancel, "Cancel", scheduler.cancel))
        if surgery.status in (SurgeryStatus.SCHEDULED, SurgeryStatus.IN_PROGRESS):
            actions.append((col_complete, "Complete", scheduler.complete))
        for column, label, action in actions:
            if column.button(label, key=f"{label.lower()}_{surgery.id}"):
                try:
                    action(surgery.id)
                    st.rerun()
                except SchedulingError as exc:
                    column.error(str(exc))


def main() -> None:
    st.set_page_config(page_title="Surgery scheduling", page_icon="🏥", layout="wide")
    st.title("Surgery scheduling")

    try:
        coordinator = get_coordinator()
    except DatabaseConnectionError as exc:
        st.error(f"Database connection failed: {exc}")
        return

    scheduler = SurgeryScheduler(coordinator)
    render_dashboard(coordinator, scheduler)
    st.divider()
    render_create_entities(coordinator)
    st.divider()
    render_scheduling(coordinator, scheduler)


if __name__ == "__main__":
    main()
