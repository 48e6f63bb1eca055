"""Dash components for conversations, chat lists and unread badges."""

from abc import ABC, abstractmethod
from typing import List, Optional

import dash_bootstrap_components as dbc
from dash import html
from dash.development.base_component import Component as DashComponent

from .display import label_for, sender_color
from .models import Identity, Message, RoomSummary

EMPTY_NOTICE = "No messages yet"


class Layout(ABC):
    """Interface for turning chat data into Dash components."""

    @abstractmethod
    def build_messages(
        self, messages: List[Message], viewer: Identity
    ) -> List[DashComponent]:
        """Renders a conversation for the given viewer."""
        pass

    @abstractmethod
    def build_room_list(
        self, summaries: List[RoomSummary], viewer: Identity
    ) -> DashComponent:
        """Renders chat-list rows with their unread counts."""
        pass

    def get_external_stylesheets(self) -> List:
        return []


class Default(Layout):
    """Bootstrap-styled rendering."""

    def get_external_stylesheets(self) -> List:
        return [dbc.themes.BOOTSTRAP]

    def build_messages(self, messages, viewer):
        if not messages:
            return [html.Div(EMPTY_NOTICE, className="text-muted text-center p-3")]
        return [self.build_message(msg, viewer) for msg in messages]

    def build_message(self, message: Message, viewer: Identity) -> DashComponent:
        """Formats a single message; the viewer's own messages sit on the right."""
        own = message.sender_id == viewer.id
        return html.Div(
            className="my-2",
            style={"textAlign": "right" if own else "left"},
            children=[
                html.Span(
                    label_for(message.sender_type, viewer.role),
                    className="fw-bold me-2",
                    style={"color": sender_color(message.sender_type)},
                ),
                html.Div(
                    message.content,
                    className="d-inline-block px-3 py-1",
                    style={
                        "borderRadius": "8px",
                        "backgroundColor": "#e3f2fd" if own else "#eeeeee",
                    },
                ),
                html.Div(
                    message.timestamp.strftime("%H:%M"),
                    style={"fontSize": "10px", "color": "#888"},
                ),
            ],
        )

    def build_room_list(self, summaries, viewer):
        if not summaries:
            return dbc.ListGroup([dbc.ListGroupItem("No conversations yet")])
        return dbc.ListGroup([self.build_room_item(row) for row in summaries])

    def build_room_item(self, summary: RoomSummary) -> DashComponent:
        room = summary.room
        title = f"Order {room.order_id}" if room.order_id else "Support"
        children = [
            html.Div(
                className="d-flex justify-content-between",
                children=[
                    html.Strong(title),
                    html.Small(summary.last_activity.strftime("%Y-%m-%d %H:%M")),
                ],
            ),
            html.Div(summary.preview, className="text-truncate text-muted"),
        ]
        if summary.has_unread:
            children.append(
                dbc.Badge(str(summary.unread_count), color="danger", pill=True)
            )
        return dbc.ListGroupItem(
            children, id={"type": "chat-room-item", "id": room.id}, action=True, n_clicks=0
        )

    def build_unread_badge(self, has_unread: bool) -> Optional[DashComponent]:
        """The dot shown on an order row's chat button."""
        if not has_unread:
            return None
        return dbc.Badge("New", color="danger", pill=True, className="ms-1")

    def build_notice(self, text: str, color: str = "warning") -> DashComponent:
        return dbc.Alert(text, color=color, className="my-2")
