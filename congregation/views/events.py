"""Events board with RSVP state and map pins"""

from typing import List

from ..auth import rules
from .base import Notice, View, sweep_notice


def rsvp_status(event: dict, user_id: str):
    if user_id in (event.get("attendees") or []):
        return "yes"
    if user_id in (event.get("declined") or []):
        return "no"
    return None


class EventsView(View):
    name = "events"

    def mount(self) -> List[Notice]:
        notices = sweep_notice(self.sweeper.sweep_expired_events())
        self.subscriptions.open("events", "events", order_by="date")
        return notices

    def render(self) -> dict:
        uid = self.identity.id
        is_admin = rules.can_create_event(self.identity)

        events = []
        pins = []
        for event in self.subscriptions.documents("events"):
            events.append({
                "id": event["id"],
                "title": event.get("title"),
                "date": event.get("date"),
                "description": event.get("description", ""),
                "expiry_date": event.get("expiry_date"),
                "locations": event.get("locations") or [],
                "attending_count": len(event.get("attendees") or []),
                "declined_count": len(event.get("declined") or []),
                "my_response": rsvp_status(event, uid),
                "can_delete": is_admin,
            })
            for location in event.get("locations") or []:
                lat, lng = location["coordinates"]
                pins.append({
                    "event_id": event["id"],
                    "title": event.get("title"),
                    "name": location.get("name"),
                    "lat": lat,
                    "lng": lng,
                })

        return {"events": events, "pins": pins, "can_create": is_admin}
