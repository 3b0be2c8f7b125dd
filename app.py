"""
app.py
Streamlit Gym Membership Manager (admin console + member portal).
Run: streamlit run app.py
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pandas as pd
import streamlit as st

import auth
import config
import db
import notifications
import scheduler
import store
import utils
from delivery import EmailSender
from models import PLAN_MONTHS, MembershipStatus


st.set_page_config(page_title="Gym Membership Manager", layout="wide")


def init_once():
    # Initialize DB + default admin if needed
    default_hash = auth.hash_password("admin123")
    db.init_db(default_hash)


@st.cache_resource
def start_background_sweeps():
    # cache_resource keeps this to one scheduler per server process
    config.configure_logging()
    init_once()
    return scheduler.start_scheduler()


def require_login():
    for key, default in (("role", None), ("username", None), ("user_id", None)):
        if key not in st.session_state:
            st.session_state[key] = default


def logout():
    st.session_state.role = None
    st.session_state.username = None
    st.session_state.user_id = None
    st.success("Logged out.")


def login_screen():
    st.title("🏋️ GymPro Login")

    tab_admin, tab_member, tab_register, tab_reset = st.tabs(
        ["Admin", "Member", "Register", "Forgot password"]
    )

    with tab_admin:
        col1, col2 = st.columns([1, 1])
        with col1:
            username = st.text_input("Username", value="admin")
            password = st.text_input("Password", type="password", key="admin_pw")
            if st.button("Login", type="primary", key="admin_login"):
                if auth.login(username.strip(), password):
                    st.session_state.role = "admin"
                    st.session_state.username = username.strip()
                    st.rerun()
                else:
                    st.error("Invalid username or password.")
        with col2:
            st.info(
                "First run creates a default admin:\n\n"
                "- username: **admin**\n"
                "- password: **admin123**\n\n"
                "You will be forced to change it on first login."
            )

    with tab_member:
        email = st.text_input("Email", key="member_email")
        password = st.text_input("Password", type="password", key="member_pw")
        if st.button("Login", type="primary", key="member_login"):
            user = auth.member_login(email, password)
            if user:
                st.session_state.role = "member"
                st.session_state.user_id = user["id"]
                st.session_state.username = user["name"]
                st.rerun()
            else:
                st.error("Invalid email or password.")

    with tab_register:
        name = st.text_input("Name", key="reg_name")
        email = st.text_input("Email", key="reg_email")
        phone = st.text_input("Phone (optional)", key="reg_phone")
        password = st.text_input("Password", type="password", key="reg_pw")
        if st.button("Register", type="primary"):
            errors = utils.validate_member_inputs(name, email, password)
            for e in errors:
                st.error(e)
            if not errors:
                try:
                    user_id = auth.register_member(name, email, phone, password)
                except store.ConflictError:
                    st.error("Email already registered.")
                else:
                    st.session_state.role = "member"
                    st.session_state.user_id = user_id
                    st.session_state.username = name.strip()
                    st.rerun()

    with tab_reset:
        reset_password_form()


def reset_password_form():
    email = st.text_input("Email", key="reset_email")
    if st.button("Send reset code"):
        code = auth.issue_reset_code(email)
        if code:
            user = store.get_user_by_email(email.strip().lower())
            EmailSender().send_reset_code(user["email"], user["name"], code, config.RESET_CODE_TTL_MINUTES)
        st.success("If the email exists, a reset code has been sent.")

    code = st.text_input("Reset code", key="reset_code")
    new1 = st.text_input("New password", type="password", key="reset_pw")
    if st.button("Reset password", type="primary"):
        ok, msg = auth.reset_password(email, code, new1)
        if ok:
            st.success(msg)
        else:
            st.error(msg)


def force_change_password_screen():
    st.title("⚠️ Change Password (Required)")

    st.warning("You must change the default password before using the app.")
    new1 = st.text_input("New password", type="password")
    new2 = st.text_input("Confirm new password", type="password")

    if st.button("Update password", type="primary"):
        if len(new1) < auth.MIN_PASSWORD_LENGTH:
            st.error("Password must be at least 6 characters.")
            return
        if new1 != new2:
            st.error("Passwords do not match.")
            return
        auth.change_password(st.session_state.username, new1)
        st.success("Password updated. You can continue.")
        st.rerun()


# ---------- Admin pages ----------

def dashboard_page():
    st.header("📊 Dashboard")

    today = date.today()
    week_ago = (datetime.now(timezone.utc) - timedelta(days=7)).isoformat(timespec="seconds")
    stats = store.dashboard_stats(today.isoformat(), (today + timedelta(days=7)).isoformat(), week_ago)

    c1, c2, c3, c4, c5 = st.columns(5)
    c1.metric("Members", int(stats["total_members"]))
    c2.metric("Active memberships", int(stats["active_memberships"]))
    c3.metric("Expiring in next 7 days", int(stats["expiring_memberships"]))
    c4.metric("Total revenue", f"{stats['total_revenue']:.2f}")
    c5.metric("Notifications (7 days)", int(stats["recent_notifications"]))

    st.divider()

    st.subheader("Expiring soon (next 7 days)")
    in_7 = (today + timedelta(days=7)).isoformat()
    rows = [dict(r) for r in store.list_memberships()
            if r["status"] == "active" and today.isoformat() <= r["end_date"] <= in_7]
    if rows:
        df = pd.DataFrame(rows)[["id", "user_name", "user_email", "plan_type", "end_date"]]
        st.dataframe(df, use_container_width=True, hide_index=True)
    else:
        st.caption("No memberships expiring in the next 7 days.")


def member_form(existing=None):
    if existing:
        st.subheader(f"✏️ Edit Member (ID: {existing['id']})")
    else:
        st.subheader("➕ Add Member")

    col1, col2 = st.columns(2)
    with col1:
        name = st.text_input("Name", value=(existing["name"] if existing else ""))
        email = st.text_input("Email", value=(existing["email"] if existing else ""))
    with col2:
        phone = st.text_input("Phone (optional)", value=((existing["phone"] or "") if existing else ""))
        password = st.text_input(
            "Password" + (" (leave blank to keep)" if existing else ""), type="password"
        )

    errors = utils.validate_member_inputs(name, email, password if (password or not existing) else None)
    for e in errors:
        st.error(e)

    if st.button("Save", type="primary", disabled=bool(errors)):
        try:
            if existing:
                store.update_user(
                    existing["id"],
                    name=name.strip(),
                    email=email.strip().lower(),
                    phone=phone.strip(),
                    password_hash=auth.hash_password(password) if password else None,
                )
                st.success("Member updated.")
            else:
                store.create_user(name.strip(), email.strip().lower(), phone.strip() or None,
                                  auth.hash_password(password))
                st.success("Member added.")
        except store.ConflictError as e:
            st.error(str(e))
            return
        st.rerun()


def members_page():
    st.header("👥 Members")

    with st.sidebar:
        st.subheader("Search")
        search = st.text_input("Search (name/email/phone)")

    rows = [dict(r) for r in store.list_members()]
    if search.strip():
        needle = search.strip().lower()
        rows = [r for r in rows if any(needle in str(r[k] or "").lower() for k in ("name", "email", "phone"))]
    df = pd.DataFrame(rows) if rows else pd.DataFrame(columns=[
        "id", "name", "email", "phone", "created_at", "membership_id", "plan_type", "end_date", "status"
    ])
    st.dataframe(df, use_container_width=True, hide_index=True)

    st.divider()

    colA, colB = st.columns([1, 2])
    with colA:
        member_ids = df["id"].tolist() if not df.empty else []
        selected_id = st.selectbox("Member ID", options=["(none)"] + [str(i) for i in member_ids])

    with colB:
        if selected_id != "(none)":
            st.subheader("Member actions")
            c1, c2 = st.columns(2)
            with c1:
                if st.button("Edit"):
                    st.session_state.edit_member_id = int(selected_id)
                    st.rerun()
            with c2:
                delete_confirm = st.checkbox("Confirm delete", value=False, key="del_confirm")
                if st.button("Delete", type="secondary", disabled=not delete_confirm):
                    store.delete_user(int(selected_id))
                    st.success("Member deleted.")
                    st.rerun()

    st.divider()

    if st.session_state.get("edit_member_id"):
        try:
            member_form(existing=store.get_user(st.session_state.edit_member_id))
        except store.NotFoundError:
            st.session_state.edit_member_id = None
        if st.button("Cancel edit"):
            st.session_state.edit_member_id = None
            st.rerun()
    else:
        member_form(existing=None)


def memberships_page():
    st.header("🎫 Memberships")

    rows = store.list_memberships()
    if rows:
        st.dataframe(pd.DataFrame([dict(r) for r in rows]), use_container_width=True, hide_index=True)
    else:
        st.caption("No memberships yet.")

    st.divider()

    members = store.list_members()
    if not members:
        st.info("No members yet. Add a member first.")
        return

    st.subheader("➕ New membership")
    st.caption("The member's current active membership (if any) is marked expired.")
    options = {f"{m['name']} ({m['email']}) - ID {m['id']}": m["id"] for m in members}
    chosen_label = st.selectbox("Member", list(options.keys()))

    col1, col2, col3 = st.columns(3)
    with col1:
        plan_type = st.selectbox("Plan type", options=list(PLAN_MONTHS.keys()))
    with col2:
        amount = st.text_input("Amount", value="1500")
    with col3:
        start_date = st.date_input("Start date", value=date.today()).isoformat()

    end_date = st.date_input(
        "End date (auto-calculated, editable)",
        value=utils.parse_iso(utils.calc_end_date(start_date, plan_type)),
    ).isoformat()

    if st.button("Create membership", type="primary"):
        errors = utils.validate_membership_inputs(plan_type, amount, start_date, end_date)
        for e in errors:
            st.error(e)
        if not errors:
            store.create_membership(options[chosen_label], plan_type, start_date, end_date, float(amount))
            st.success("Membership created.")
            st.rerun()

    st.divider()

    st.subheader("✏️ Update membership")
    ids = [r["id"] for r in rows]
    if not ids:
        return
    membership_id = st.selectbox("Membership ID", ids)
    m = store.get_membership(int(membership_id))

    col1, col2, col3, col4 = st.columns(4)
    with col1:
        new_end = st.date_input("End date", value=utils.parse_iso(m.end_date), key="upd_end").isoformat()
    with col2:
        new_amount = st.text_input("Amount", value=str(m.amount), key="upd_amount")
    with col3:
        # expired memberships stay expired; renew with a new membership instead
        statuses = [m.status.value]
        if m.status is MembershipStatus.ACTIVE:
            statuses.append(MembershipStatus.EXPIRED.value)
        new_status = st.selectbox("Status", statuses, index=0)
    with col4:
        new_plan = st.text_input("Plan type", value=m.plan_type, key="upd_plan")

    if st.button("Update"):
        errors = utils.validate_membership_inputs(new_plan, new_amount, m.start_date, new_end)
        for e in errors:
            st.error(e)
        if not errors:
            try:
                store.update_membership(m.id, plan_type=new_plan, end_date=new_end,
                                        amount=float(new_amount), status=MembershipStatus(new_status))
            except store.ConflictError as e:
                st.error(str(e))
                return
            st.success("Membership updated.")
            st.rerun()


def notifications_page():
    st.header("🔔 Notifications")

    if st.button("Run expiry check now", type="primary"):
        count = notifications.run_sweep()
        st.success(f"Checked memberships, {count} notification(s) sent.")

    rows = store.list_notifications(limit=100)
    if rows:
        st.dataframe(pd.DataFrame([dict(r) for r in rows]), use_container_width=True, hide_index=True)
    else:
        st.caption("No notifications yet.")


def reports_page():
    st.header("🧾 Reports")

    st.subheader("Export members to CSV")
    members = store.list_members()
    if members:
        st.download_button(
            "Download members.csv",
            data=utils.rows_to_csv_bytes(members),
            file_name="members.csv",
            mime="text/csv",
        )
    else:
        st.caption("No members to export.")

    st.divider()

    st.subheader("Export memberships to CSV")
    memberships = store.list_memberships()
    if memberships:
        st.download_button(
            "Download memberships.csv",
            data=utils.rows_to_csv_bytes(memberships),
            file_name="memberships.csv",
            mime="text/csv",
        )
    else:
        st.caption("No memberships to export.")

    st.divider()

    st.subheader("Revenue summary by month")
    st.dataframe(utils.revenue_summary_by_month(), use_container_width=True, hide_index=True)


def settings_page():
    st.header("⚙️ Settings")

    st.subheader("Change password")
    p1 = st.text_input("New password", type="password")
    p2 = st.text_input("Confirm new password", type="password")
    if st.button("Update password", type="primary"):
        if len(p1) < auth.MIN_PASSWORD_LENGTH:
            st.error("Password must be at least 6 characters.")
        elif p1 != p2:
            st.error("Passwords do not match.")
        else:
            auth.change_password(st.session_state.username, p1)
            st.success("Password updated.")

    st.divider()

    st.subheader("Sample data")
    st.caption("Insert 3 sample members with memberships for testing (adds new rows each run).")
    if st.button("Insert sample data"):
        utils.insert_sample_data()
        st.success("Sample data inserted.")
        st.rerun()


def admin_app():
    st.sidebar.title("🏋️ GymPro Admin")
    st.sidebar.caption(f"Logged in as: {st.session_state.username}")

    pages = {
        "Dashboard": dashboard_page,
        "Members": members_page,
        "Memberships": memberships_page,
        "Notifications": notifications_page,
        "Reports": reports_page,
        "Settings": settings_page,
    }
    names = list(pages)
    if st.session_state.get("page") not in pages:
        st.session_state.page = "Dashboard"
    st.session_state.page = st.sidebar.radio("Navigate", names, index=names.index(st.session_state.page))

    if st.sidebar.button("Logout"):
        logout()
        st.rerun()

    pages[st.session_state.page]()


# ---------- Member portal ----------

def member_app():
    user_id = st.session_state.user_id
    try:
        user = store.get_user(user_id)
    except store.NotFoundError:
        logout()
        st.rerun()
        return

    unread = store.unread_count(user_id)
    st.sidebar.title("🏋️ GymPro")
    st.sidebar.caption(f"Logged in as: {user['name']}")
    page = st.sidebar.radio("Navigate", ["Membership", f"Notifications ({unread})", "Profile"])
    if st.sidebar.button("Logout"):
        logout()
        st.rerun()

    if page == "Membership":
        st.header("🎫 My Membership")
        m = store.get_active_membership(user_id)
        if not m:
            st.info("No active membership found.")
        else:
            days = notifications.days_remaining(m.end_date)
            c1, c2, c3 = st.columns(3)
            c1.metric("Plan", m.plan_type)
            c2.metric("Ends", m.end_date)
            c3.metric("Days remaining", days)
            if days <= 0:
                st.error("Your membership has expired. Please renew to continue.")
            elif days <= 7:
                st.warning("Your membership is expiring soon.")

        st.subheader("History")
        history = store.membership_history(user_id)
        if history:
            st.dataframe(pd.DataFrame([dict(r) for r in history]), use_container_width=True, hide_index=True)
        else:
            st.caption("No memberships yet.")

    elif page.startswith("Notifications"):
        st.header("🔔 Notifications")
        if st.button("Mark all as read", disabled=unread == 0):
            store.mark_all_read(user_id)
            st.rerun()
        items = store.user_notifications(user_id)
        if not items:
            st.caption("No notifications.")
        for n in items:
            c1, c2 = st.columns([5, 1])
            c1.write(("" if n.is_read else "🆕 ") + f"{n.message}  \n_{n.created_at}_")
            if not n.is_read and c2.button("Mark read", key=f"read_{n.id}"):
                store.mark_notification_read(n.id, user_id)
                st.rerun()

    else:
        st.header("👤 Profile")
        name = st.text_input("Name", value=user["name"])
        phone = st.text_input("Phone", value=user["phone"] or "")
        st.text_input("Email", value=user["email"], disabled=True)
        if st.button("Save profile", type="primary"):
            store.update_user(user_id, name=name.strip(), phone=phone.strip())
            st.success("Profile updated.")

        st.subheader("Change password")
        current = st.text_input("Current password", type="password")
        new1 = st.text_input("New password", type="password")
        if st.button("Update password"):
            if len(new1) < auth.MIN_PASSWORD_LENGTH:
                st.error("Password must be at least 6 characters.")
            elif auth.change_member_password(user_id, current, new1):
                st.success("Password updated.")
            else:
                st.error("Current password is incorrect.")


# --------- App entry ---------

def run():
    start_background_sweeps()
    require_login()

    if st.session_state.role is None:
        login_screen()
        return

    if st.session_state.role == "member":
        member_app()
        return

    # Force password change on first login after DB creation
    if db.is_force_password_change():
        force_change_password_screen()
        return

    admin_app()


if __name__ == "__main__":
    run()
