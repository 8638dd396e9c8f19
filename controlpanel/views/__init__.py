from .control_panel import dashboard, staff_list, staff_invite, staff_role, staff_deactivate
