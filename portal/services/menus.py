from __future__ import annotations

from sqlalchemy.orm import Session

from portal.models import Menu, RoleMenu


class MenuService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def menus_for_role(self, role_id: int | None) -> list[dict[str, str]]:
        if role_id is None:
            return []
        rows = (
            self.session.query(Menu)
            .join(RoleMenu, RoleMenu.menu_id == Menu.id)
            .filter(RoleMenu.role_id == role_id)
            .order_by(Menu.id.asc())
            .all()
        )
        return [{"name": menu.name, "url": menu.url, "icon": menu.icon or "bi bi-circle"} for menu in rows]

    def grant(self, role_id: int, name: str, url: str, icon: str | None = None) -> Menu:
        menu = self.session.query(Menu).filter_by(url=url).first()
        if not menu:
            menu = Menu(name=name, url=url, icon=icon)
            self.session.add(menu)
            self.session.flush()
        if not self.session.query(RoleMenu).filter_by(role_id=role_id, menu_id=menu.id).first():
            self.session.add(RoleMenu(role_id=role_id, menu_id=menu.id))
        self.session.commit()
        self.session.refresh(menu)
        return menu
