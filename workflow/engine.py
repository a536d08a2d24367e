"""
Purchase request workflow engine.

Sequences the data-service calls behind every workflow action: request status
transitions, line-item decisions, quantity tracking, receive photos and the
receive-into-stock reconciliation. The data service is any object exposing the
coroutine functions of ``database.operations`` (the module itself in
production); photo storage follows ``database.storage``.
"""

import json
import traceback
from datetime import datetime
from typing import Any, BinaryIO, Dict, List, Optional

from database import operations
from database import storage as photo_storage
from logging_config import logger
from models.purchase_request import (
    LineItemStatus,
    PurchaseRequestCreate,
    RequestStatus,
    STATUS_LABEL,
)
from models.user import Actor
from models.workflow_event import EventType
from workflow.errors import (
    AlreadyStocked,
    ConcurrentModification,
    InvalidTransition,
    NotFound,
    PermissionDenied,
    ValidationFailed,
)
from workflow.state_machine import Action, resolve_transition, stamp_fields, worklist_statuses

PHOTO_SLOTS = (1, 2)

# Who may edit which tracked quantity on a line
QUANTITY_FIELD_RIGHTS = {
    "approved_qty": ("approve line quantities", lambda actor: actor.may_approve),
    "purchased_qty": ("record purchased quantities", lambda actor: actor.may_purchase),
    "delivered_qty": ("record delivered quantities", lambda actor: actor.may_purchase),
    "received_qty": ("record received quantities", lambda actor: actor.may_receive),
}


def _format_qty(value: Any) -> str:
    return f"{float(value):g}"


def _required_comment(comment: Optional[str], message: str) -> str:
    text = (comment or "").strip()
    if not text:
        raise ValidationFailed(message)
    return text


class PurchaseRequestWorkflow:
    def __init__(self, store=None, storage=None):
        self.store = store or operations
        self.storage = storage or photo_storage

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def _load_request(self, request_id: str, session=None) -> Dict[str, Any]:
        request = await self.store.get_purchase_request(request_id, session=session)
        if not request:
            raise NotFound("Purchase request not found")
        return request

    async def _load_item(self, request_id: str, item_id: str) -> Dict[str, Any]:
        item = await self.store.get_request_item(item_id)
        if not item or item.get("request_id") != request_id:
            raise NotFound("Line item not found on this request")
        return item

    async def get_request_detail(self, request_id: str) -> Dict[str, Any]:
        request = await self._load_request(request_id)
        items = await self.store.get_request_items(request_id)
        project = None
        if request.get("project_id"):
            project = await self.store.get_project(request["project_id"])

        total_requested = 0.0
        total_approved = 0.0
        for item in items:
            price = item.get("est_unit_price") or 0
            total_requested += price * float(item.get("quantity") or 0)
            total_approved += price * float(item.get("approved_qty") or 0)

        return {
            **request,
            "project": project,
            "items": items,
            "total_estimated_requested": total_requested,
            "total_estimated_approved": total_approved,
        }

    async def my_requests(self, actor: Actor) -> List[Dict[str, Any]]:
        return await self.store.get_requests_by_requester(actor.id)

    async def pending_requests(self, actor: Actor) -> List[Dict[str, Any]]:
        statuses = [status.value for status in worklist_statuses(actor)]
        return await self.store.get_requests_by_status(statuses)

    async def involved_requests(self, actor: Actor) -> List[Dict[str, Any]]:
        request_ids = await self.store.get_request_ids_by_actor(actor.id)
        return await self.store.get_requests_by_ids(request_ids)

    async def list_events(self, request_id: str) -> List[Dict[str, Any]]:
        await self._load_request(request_id)
        return await self.store.get_request_events(request_id)

    # ------------------------------------------------------------------
    # Event log
    # ------------------------------------------------------------------

    async def _log_event(
        self,
        request_id: str,
        actor: Actor,
        event_type: EventType,
        item_id: Optional[str] = None,
        from_status: Optional[str] = None,
        to_status: Optional[str] = None,
        comment: Optional[str] = None,
        session=None,
    ) -> str:
        event = {
            "request_id": request_id,
            "item_id": item_id,
            "performed_by": actor.id,
            "event_type": event_type.value,
            "from_status": from_status,
            "to_status": to_status,
            "comment": comment,
        }
        return await self.store.add_workflow_event(event, session=session)

    # ------------------------------------------------------------------
    # Request lifecycle
    # ------------------------------------------------------------------

    async def create_request(self, actor: Actor, data: PurchaseRequestCreate) -> Dict[str, Any]:
        if not (data.project_id or "").strip():
            raise ValidationFailed("Project is required.")

        lines = [line for line in data.items if line.description.strip() and line.quantity is not None]
        if not lines:
            raise ValidationFailed("Add at least one line item with description and quantity.")
        for line in lines:
            if line.quantity <= 0:
                raise ValidationFailed(f"Quantity for '{line.description.strip()}' must be greater than 0.")

        project = await self.store.get_project(data.project_id)
        if not project:
            raise NotFound("Project not found")

        request_data = {
            "project_id": data.project_id,
            "requested_by": actor.id,
            "status": RequestStatus.SUBMITTED.value,
            "needed_by": data.needed_by.isoformat() if data.needed_by else None,
            "notes": (data.notes or "").strip() or None,
        }
        line_docs = [
            {
                "item_id": None,
                "description": line.description.strip(),
                "quantity": line.quantity,
                "unit": (line.unit or "").strip() or "ea",
                "application_location": (line.application_location or "").strip() or None,
                "est_unit_price": line.est_unit_price,
                "status": LineItemStatus.PENDING.value,
                "approved_qty": None,
                "purchased_qty": None,
                "delivered_qty": None,
                "received_qty": None,
                "reject_comment": None,
                "resubmit_comment": None,
                "received_photo_url_1": None,
                "received_photo_url_2": None,
            }
            for line in lines
        ]

        async with self.store.transaction() as session:
            request_id = await self.store.create_purchase_request(request_data, line_docs, session=session)
            await self._log_event(
                request_id,
                actor,
                EventType.STATUS_CHANGE,
                to_status=RequestStatus.SUBMITTED.value,
                comment="Request submitted",
                session=session,
            )

        logger.info(f"Purchase request {request_id} submitted by {actor.id} with {len(line_docs)} line(s)")
        return await self.get_request_detail(request_id)

    async def transition(
        self,
        request_id: str,
        action: Action,
        actor: Actor,
        comment: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Fire ``action`` on a request. The status write and its status_change
        event commit together; a stale version aborts before any event.
        """
        action = Action(action)
        if action == Action.REJECT:
            comment = _required_comment(comment, "Rejection reason is required.")
        else:
            comment = (comment or "").strip() or None

        request = await self._load_request(request_id)
        current = RequestStatus(request["status"])
        target = resolve_transition(current, action, actor)

        payload = stamp_fields(target, actor.id, datetime.utcnow())
        if target == RequestStatus.REJECTED:
            payload["rejection_comment"] = comment

        async with self.store.transaction() as session:
            updated = await self.store.update_purchase_request(
                request_id,
                payload,
                expected_version=request.get("version"),
                session=session,
            )
            if not updated:
                logger.warning(f"Stale status write on request {request_id} ({current.value} -> {target.value})")
                raise ConcurrentModification("Request was changed by someone else. Reload and try again.")

            await self._log_event(
                request_id,
                actor,
                EventType.STATUS_CHANGE,
                from_status=current.value,
                to_status=target.value,
                comment=comment,
                session=session,
            )

        logger.info(f"Request {request_id}: {current.value} -> {target.value} by {actor.id}")
        return await self._load_request(request_id)

    async def approve(self, request_id: str, actor: Actor, comment: Optional[str] = None):
        return await self.transition(request_id, Action.APPROVE, actor, comment)

    async def reject(self, request_id: str, actor: Actor, comment: Optional[str]):
        return await self.transition(request_id, Action.REJECT, actor, comment)

    async def mark_purchased(self, request_id: str, actor: Actor, comment: Optional[str] = None):
        return await self.transition(request_id, Action.MARK_PURCHASED, actor, comment)

    async def mark_delivered(self, request_id: str, actor: Actor, comment: Optional[str] = None):
        return await self.transition(request_id, Action.MARK_DELIVERED, actor, comment)

    async def mark_received(self, request_id: str, actor: Actor, comment: Optional[str] = None):
        return await self.transition(request_id, Action.MARK_RECEIVED, actor, comment)

    # ------------------------------------------------------------------
    # Line items
    # ------------------------------------------------------------------

    async def _write_item(self, item: Dict[str, Any], update: Dict[str, Any], session=None) -> None:
        updated = await self.store.update_request_item(
            item["id"],
            update,
            expected_version=item.get("version"),
            session=session,
        )
        if not updated:
            raise ConcurrentModification("Line item was changed by someone else. Reload and try again.")

    async def approve_item(
        self,
        request_id: str,
        item_id: str,
        actor: Actor,
        approved_qty: Optional[float] = None,
        comment: Optional[str] = None,
    ) -> Dict[str, Any]:
        if not actor.may_approve:
            raise PermissionDenied("Only approvers can approve line items")

        item = await self._load_item(request_id, item_id)
        max_qty = float(item.get("quantity") or 0)
        if max_qty <= 0:
            raise ValidationFailed("Item has no valid quantity to approve/reject.")

        qty = max_qty if approved_qty is None else float(approved_qty)
        if qty <= 0 or qty > max_qty:
            raise ValidationFailed(f"Approved quantity must be greater than 0 and at most {_format_qty(max_qty)}.")

        update = {"status": LineItemStatus.APPROVED.value, "approved_qty": qty}
        log_comment = f"Approved {_format_qty(qty)} of {_format_qty(max_qty)} {item.get('unit') or 'ea'}"

        if item.get("status") == LineItemStatus.REJECTED.value:
            note = _required_comment(comment, "A note is required to re-approve a rejected item.")
            update["resubmit_comment"] = note
            log_comment = f"{log_comment}. Re-approval note: {note}"

        async with self.store.transaction() as session:
            await self._write_item(item, update, session=session)
            await self._log_event(
                request_id,
                actor,
                EventType.ITEM_APPROVED,
                item_id=item_id,
                comment=log_comment,
                session=session,
            )

        logger.info(f"Line {item_id} on request {request_id} approved ({_format_qty(qty)}) by {actor.id}")
        return await self.store.get_request_item(item_id)

    async def reject_item(self, request_id: str, item_id: str, actor: Actor, comment: Optional[str]) -> Dict[str, Any]:
        comment = _required_comment(comment, "Rejection comment is required.")
        if not actor.may_approve:
            raise PermissionDenied("Only approvers can reject line items")

        item = await self._load_item(request_id, item_id)
        if float(item.get("quantity") or 0) <= 0:
            raise ValidationFailed("Item has no valid quantity to approve/reject.")

        update = {
            "status": LineItemStatus.REJECTED.value,
            "approved_qty": 0,
            "reject_comment": comment,
        }

        async with self.store.transaction() as session:
            await self._write_item(item, update, session=session)
            await self._log_event(
                request_id,
                actor,
                EventType.ITEM_REJECTED,
                item_id=item_id,
                comment=comment,
                session=session,
            )

        logger.info(f"Line {item_id} on request {request_id} rejected by {actor.id}")
        return await self.store.get_request_item(item_id)

    async def save_line(self, request_id: str, item_id: str, actor: Actor, changes: Dict[str, Any]) -> Dict[str, Any]:
        """Persist only the tracked quantities present in ``changes``."""
        if not changes:
            raise ValidationFailed("No quantity changes to save.")

        for field, value in changes.items():
            if field not in QUANTITY_FIELD_RIGHTS:
                raise ValidationFailed(f"'{field}' is not an editable line quantity.")
            if value is not None and float(value) < 0:
                raise ValidationFailed(f"'{field}' cannot be negative.")
            description, allowed = QUANTITY_FIELD_RIGHTS[field]
            if not allowed(actor):
                raise PermissionDenied(f"Not allowed to {description}")

        item = await self._load_item(request_id, item_id)

        async with self.store.transaction() as session:
            await self._write_item(item, dict(changes), session=session)
            await self._log_event(
                request_id,
                actor,
                EventType.LINE_QTY_UPDATE,
                item_id=item_id,
                comment=json.dumps(changes, sort_keys=True),
                session=session,
            )

        logger.info(f"Line {item_id} quantities updated by {actor.id}: {changes}")
        return await self.store.get_request_item(item_id)

    async def upload_line_photo(
        self,
        request_id: str,
        item_id: str,
        actor: Actor,
        slot: int,
        filename: str,
        fileobj: BinaryIO,
    ) -> Dict[str, Any]:
        if slot not in PHOTO_SLOTS:
            raise ValidationFailed("Photo slot must be 1 or 2.")
        if not actor.may_receive:
            raise PermissionDenied("Only receivers can upload received-condition photos")

        item = await self._load_item(request_id, item_id)
        url = await self.storage.save_line_photo(request_id, item_id, slot, filename, fileobj)

        async with self.store.transaction() as session:
            await self._write_item(item, {f"received_photo_url_{slot}": url}, session=session)
            await self._log_event(
                request_id,
                actor,
                EventType.LINE_PHOTO_UPLOAD,
                item_id=item_id,
                comment=url,
                session=session,
            )

        logger.info(f"Photo {slot} stored for line {item_id}: {url}")
        return await self.store.get_request_item(item_id)

    # ------------------------------------------------------------------
    # Receive into stock
    # ------------------------------------------------------------------

    @staticmethod
    def _line_photos(line: Dict[str, Any]) -> List[str]:
        return [url for url in (line.get("received_photo_url_1"), line.get("received_photo_url_2")) if url]

    async def _stock_line(self, request: Dict[str, Any], line: Dict[str, Any], actor: Actor) -> str:
        """
        Stock one line; returns "created" or "updated".

        The line is claimed (``stocked_at``) before inventory is touched. With
        a transaction every write rolls back together on failure. Without one,
        the claim is released only while no inventory quantity has been
        written, so a rerun can never count the same line twice.
        """
        qty = float(line["received_qty"])
        photos = self._line_photos(line)
        now = datetime.utcnow()
        applied = []

        async with self.store.transaction() as session:
            claimed = await self.store.update_request_item(
                line["id"],
                {"stocked_at": now, "stocked_qty": qty},
                expected_version=line.get("version"),
                session=session,
            )
            if not claimed:
                raise ConcurrentModification(f"Line {line['id']} changed while stocking")

            try:
                return await self._apply_to_inventory(request, line, actor, qty, photos, now, applied, session)
            except Exception:
                if session is None and not applied:
                    await self.store.update_request_item(
                        line["id"],
                        {"stocked_at": None, "stocked_qty": None},
                        expected_version=line.get("version", 0) + 1,
                    )
                elif session is None:
                    logger.error(
                        f"Line {line['id']} stays stocked: quantity already applied to inventory item {applied[0]}"
                    )
                raise

    async def _apply_to_inventory(self, request, line, actor, qty, photos, now, applied, session) -> str:
        # The quantity-changing write runs last; ``applied`` records that it landed
        inventory_id = line.get("item_id")
        if inventory_id:
            inventory_item = await self.store.get_inventory_item(inventory_id, session=session)
            if not inventory_item:
                raise NotFound(f"Inventory item {inventory_id} not found")
            if photos and not inventory_item.get("image_url") and not inventory_item.get("image_url_2"):
                await self.store.update_inventory_item(
                    inventory_id,
                    {"image_url": photos[0], "image_url_2": photos[1] if len(photos) > 1 else None},
                    session=session,
                )
            await self.store.update_inventory_quantity(inventory_id, qty, session=session)
            applied.append(inventory_id)
            return "updated"

        new_item = {
            "name": line.get("description"),
            "description": request.get("notes"),
            "category": None,
            "location": line.get("application_location"),
            "te_number": None,
            "quantity": qty,
            "unit": line.get("unit"),
            "image_url": photos[0] if photos else None,
            "image_url_2": photos[1] if len(photos) > 1 else None,
            "purchase_price": line.get("est_unit_price"),
            "purchase_date": now.date().isoformat(),
            "created_by": actor.id,
            "source_request_id": request["id"],
        }
        new_id = await self.store.add_inventory_item(new_item, session=session)
        applied.append(new_id)
        await self.store.update_request_item(line["id"], {"item_id": new_id}, session=session)
        return "created"

    async def receive_to_stock(self, request_id: str, actor: Actor) -> Dict[str, Any]:
        """
        Convert received quantities into inventory. Rejected lines, lines with
        no received quantity and lines already stocked are skipped. A failing
        line is logged and left unmarked so a rerun picks it up, unless its
        quantity already reached inventory; exactly one ``stocked`` event is
        written per run.
        """
        if not actor.may_receive:
            raise PermissionDenied("Only receivers can receive items into stock")

        request = await self._load_request(request_id)
        if request["status"] != RequestStatus.RECEIVED.value:
            label = STATUS_LABEL.get(RequestStatus(request["status"]), request["status"])
            raise InvalidTransition(f"Only received requests can be stocked; this request is {label}")
        if request.get("stocked_at"):
            raise AlreadyStocked("Items on this request were already received into stock")

        lines = await self.store.get_request_items(request_id)
        outcome = {"created": [], "updated": [], "skipped": [], "failed": []}

        for line in lines:
            received = float(line.get("received_qty") or 0)
            if line.get("status") == LineItemStatus.REJECTED.value or received <= 0 or line.get("stocked_at"):
                outcome["skipped"].append(line["id"])
                continue

            try:
                result = await self._stock_line(request, line, actor)
            except Exception as e:
                logger.error(f"Error stocking line {line['id']} of request {request_id}: {str(e)}")
                logger.error(traceback.format_exc())
                outcome["failed"].append(line["id"])
                continue
            outcome[result].append(line["id"])

        complete = not outcome["failed"]
        message = (
            f"Items received into inventory: {len(outcome['created'])} created, "
            f"{len(outcome['updated'])} updated, {len(outcome['skipped'])} skipped, "
            f"{len(outcome['failed'])} failed."
        )

        async with self.store.transaction() as session:
            await self._log_event(request_id, actor, EventType.STOCKED, comment=message, session=session)
            if complete:
                await self.store.update_purchase_request(
                    request_id,
                    {"stocked_by": actor.id, "stocked_at": datetime.utcnow()},
                    session=session,
                )

        logger.info(f"Request {request_id} stocked by {actor.id}. {message}")
        return {"request_id": request_id, **outcome, "complete": complete, "message": message}
