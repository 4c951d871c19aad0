"""Publishing orchestrator — drives one platform publishing record end to end.

Publish flow for a record (each step logged and persisted as it completes):

1. Load the record in the caller's organization and check capabilities
2. Field enhancement (never fails; falls back to derived defaults)
3. Link validation (skipped for drafts); a blocked result aborts before
   any write or remote call
4. Take the record: conditional status change to ``publishing``
5. Create or update the remote item; persist platform_post_id at once
6. Site publish (best-effort: failure leaves the item published with
   ``sitePublished=False`` and a warning)
7. Advisory visibility check of the remote item

Any failure after step 4 leaves the record ``failed`` with the step's
error. Nothing is retried automatically; ``retry`` resets a failed record
and the next publish resumes from the recorded progress.

Usage:
    orchestrator = PublishingOrchestrator(store)
    result = orchestrator.publish(principal, publishing_id)
    print(result.to_response())
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Optional

from src.common.config import settings
from src.common.errors import (
    STEP_CREATE,
    STEP_DELETE,
    STEP_ENHANCEMENT,
    STEP_PUBLISH_SITE,
    STEP_UNPUBLISH,
    STEP_VALIDATION,
    InvalidState,
    NotFound,
    PreconditionFailed,
    RemoteItemMissing,
    UpstreamError,
    ValidationFailed,
    WorkflowError,
    error_response,
)
from src.common.logging import setup_logging
from src.link_validator import ContentIndex, LinkValidationResult, LinkValidator
from src.publisher import (
    FieldEnhancer,
    PlatformAdapter,
    PublishPlatform,
    PublishResult,
    create_adapter,
    supported_platforms,
)
from src.publisher.models import payload_hash

from .models import Integration, PlatformPublishingRecord, Post, utc_now
from .permissions import Operation, Principal, authorize
from .queue import GenerationQueue
from .status import (
    PUBLISH_FROM,
    REPUBLISH_FROM,
    PlatformStatus,
    SyncStatus,
    ensure_transition,
)
from .store import WorkflowStore

logger = setup_logging(module_name="workflow.orchestrator")

AdapterFactory = Callable[[PublishPlatform, dict[str, Any]], PlatformAdapter]

INTERRUPTED = "INTERRUPTED"


@dataclass
class DeleteOutcome:
    """Result of removing a record's remote item."""
    item_id: str
    deleted: bool
    site_published: bool
    record_deleted: bool
    record: Optional[PlatformPublishingRecord] = None

    def to_response(self) -> dict[str, Any]:
        return {
            "success": True,
            "result": {
                "itemId": self.item_id,
                "deleted": self.deleted,
                "sitePublished": self.site_published,
                "localRecordDeleted": self.record_deleted,
            },
        }


class PublishingOrchestrator:
    """The only writer of PlatformPublishingRecord rows."""

    def __init__(
        self,
        store: WorkflowStore,
        enhancer: FieldEnhancer | None = None,
        adapter_factory: AdapterFactory = create_adapter,
        strict_links: bool | None = None,
    ) -> None:
        self.store = store
        self.enhancer = enhancer or FieldEnhancer()
        self.adapter_factory = adapter_factory
        self.strict_links = settings.workflow.strict_links if strict_links is None else strict_links
        self.queue = GenerationQueue(store)

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    def create_record(
        self,
        principal: Principal,
        post_id: str,
        platform: PublishPlatform | str = PublishPlatform.WEBFLOW,
        queue_id: Optional[str] = None,
    ) -> PlatformPublishingRecord:
        """Open a publishing record for (post, platform).

        Raises:
            ValidationFailed: No adapter is registered for ``platform``.
            NotFound: The post is not in the principal's organization.
            InvalidState: The post already has a record for the platform.
        """
        authorize(principal, Operation.PUBLISH)
        supported = supported_platforms()
        name = platform.value if isinstance(platform, PublishPlatform) else str(platform)
        if name not in supported:
            raise ValidationFailed(
                f"Unsupported platform: {name}",
                details={"supported": supported},
            )
        platform = PublishPlatform(name)
        if self.store.get_post(principal.org_id, post_id) is None:
            raise NotFound(f"Post {post_id} not found")
        if self.store.find_publishing(principal.org_id, post_id, platform) is not None:
            raise InvalidState(f"Post {post_id} already has a {platform.value} publishing record")
        record = self.store.create_publishing(
            PlatformPublishingRecord(
                org_id=principal.org_id,
                post_id=post_id,
                platform=platform,
                queue_id=queue_id,
            )
        )
        logger.info("Created publishing record %s for post %s", record.publishing_id, post_id)
        return record

    def get_record(self, principal: Principal, publishing_id: str) -> PlatformPublishingRecord:
        record = self.store.get_publishing(principal.org_id, publishing_id)
        if record is None:
            raise NotFound(f"Publishing record {publishing_id} not found")
        return record

    # ------------------------------------------------------------------
    # Publish / republish / retry
    # ------------------------------------------------------------------

    def publish(
        self,
        principal: Principal,
        publishing_id: str,
        is_draft: bool = False,
        strict_links: bool | None = None,
    ) -> PublishResult:
        return self._publish(principal, publishing_id, Operation.PUBLISH, PUBLISH_FROM, is_draft, strict_links)

    def republish(
        self,
        principal: Principal,
        publishing_id: str,
        is_draft: bool = False,
        strict_links: bool | None = None,
    ) -> PublishResult:
        """Push changes to an already published (or unpublished) item."""
        return self._publish(principal, publishing_id, Operation.REPUBLISH, REPUBLISH_FROM, is_draft, strict_links)

    def retry(self, principal: Principal, publishing_id: str) -> PlatformPublishingRecord:
        """Reset a failed record to pending: retry_count + 1, errors cleared.

        Raises:
            InvalidState: The record is not ``failed``.
        """
        authorize(principal, Operation.RETRY)
        record = self.get_record(principal, publishing_id)
        if record.status != PlatformStatus.FAILED:
            raise InvalidState(
                f"Retry is only allowed from failed (current status: {record.status.value})",
                details={"status": record.status.value},
            )
        ensure_transition("platform", record.status, PlatformStatus.PENDING)

        meta = record.metadata_with_history("retry", requested_by=principal.user_id)
        meta.pop("last_error", None)
        updated = self.store.compare_and_set_publishing(
            publishing_id,
            [PlatformStatus.FAILED],
            {
                "status": PlatformStatus.PENDING,
                "retry_count": record.retry_count + 1,
                "error_code": None,
                "error_message": None,
                "last_retry_at": utc_now(),
                "sync_metadata": meta,
            },
        )
        if updated is None:
            raise InvalidState(f"Publishing record {publishing_id} changed status during retry")
        logger.info("Retry %d requested for %s by %s", updated.retry_count, publishing_id, principal.user_id)
        return updated

    def retry_publish(
        self,
        principal: Principal,
        publishing_id: str,
        is_draft: bool = False,
        strict_links: bool | None = None,
    ) -> PublishResult:
        """Retry, then publish again from the last confirmed step."""
        self.retry(principal, publishing_id)
        return self._publish(principal, publishing_id, Operation.RETRY, PUBLISH_FROM, is_draft, strict_links)

    def _publish(
        self,
        principal: Principal,
        publishing_id: str,
        operation: Operation,
        allowed_from: frozenset[PlatformStatus],
        is_draft: bool,
        strict_links: bool | None,
    ) -> PublishResult:
        authorize(principal, operation)
        record = self.get_record(principal, publishing_id)
        if record.status not in allowed_from:
            raise InvalidState(
                f"Cannot {operation.value} a record in status {record.status.value}",
                details={"status": record.status.value, "allowed": sorted(s.value for s in allowed_from)},
            )
        ensure_transition("platform", record.status, PlatformStatus.PUBLISHING)

        integration = self._integration(record)
        adapter = self.adapter_factory(record.platform, integration.config)
        post = self._post(record)

        logger.info("Step 1: enhancement for %s", publishing_id)
        fields = self.enhancer.enhance(post.title, post.content, post.featured_image or None, post.keywords)
        payload = post.to_payload().with_enhancements(fields)
        if fields.is_fallback:
            logger.warning("Enhancement fell back to derived fields for %s", publishing_id)

        validation: LinkValidationResult | None = None
        if is_draft:
            logger.info("Step 2: link validation skipped for draft %s", publishing_id)
        else:
            logger.info("Step 2: link validation for %s", publishing_id)
            strict = self.strict_links if strict_links is None else strict_links
            validation = self.validate_links(record.org_id, payload.content, integration, strict)
            if not validation.can_publish:
                raise ValidationFailed(
                    f"Link validation blocked publishing: {'; '.join(validation.errors)}",
                    step=STEP_VALIDATION,
                    details=validation.to_dict(),
                )

        content_hash = payload_hash(payload, is_draft)
        progress: dict[str, Any] = {
            "operation": operation.value,
            "started_at": utc_now(),
            "started_by": principal.user_id,
            "is_draft": is_draft,
            "current_step": STEP_CREATE,
            STEP_ENHANCEMENT: {"provider": fields.provider, "model": fields.model, "slug": payload.slug},
            STEP_VALIDATION: validation.summary() if validation else {"skipped": True},
        }
        previous_item = record.progress.get("item")
        if previous_item and previous_item.get("item_id") == record.platform_post_id:
            progress["item"] = previous_item

        locked = self.store.compare_and_set_publishing(
            publishing_id,
            [record.status],
            {
                "status": PlatformStatus.PUBLISHING,
                "sync_metadata": record.metadata_with(progress=progress, last_error=None),
            },
        )
        if locked is None:
            raise InvalidState(f"Another publish is already in progress for {publishing_id}")

        step = STEP_CREATE
        try:
            record = locked
            logger.info("Step 3: create/update item for %s", publishing_id)
            item = progress.get("item") or {}
            if record.platform_post_id and item.get("content_hash") == content_hash:
                logger.info("Item %s already up to date, skipping update", record.platform_post_id)
                item_id = record.platform_post_id
                progress["current_step"] = STEP_PUBLISH_SITE
            else:
                result = adapter.create_or_update_item(
                    integration.collection_id,
                    integration.mappings or None,
                    payload,
                    platform_post_id=record.platform_post_id,
                    is_draft=is_draft,
                )
                item_id = result.item_id
                progress["item"] = {
                    "item_id": item_id,
                    "created": result.created,
                    "content_hash": content_hash,
                    "at": utc_now(),
                }
                progress["current_step"] = STEP_PUBLISH_SITE
                record = self._save_progress(record, progress, platform_post_id=item_id)

            step = STEP_PUBLISH_SITE
            site_published, warning = False, ""
            if is_draft:
                logger.info("Step 4: site publish skipped for draft %s", publishing_id)
            else:
                logger.info("Step 4: site publish for %s", publishing_id)
                site_published, warning = self._publish_site(adapter, integration, progress)

            url = adapter.build_item_url(
                payload.slug,
                site_url=integration.site_url,
                site_id=integration.site_id,
                url_prefix=integration.url_prefix,
            )
            progress["current_step"] = None
            progress["completed_at"] = utc_now()
            now = utc_now()
            final = self.store.compare_and_set_publishing(
                publishing_id,
                [PlatformStatus.PUBLISHING],
                {
                    "status": PlatformStatus.PUBLISHED,
                    "platform_post_id": item_id,
                    "platform_url": url,
                    "sync_status": SyncStatus.SYNCED,
                    "error_code": None,
                    "error_message": None,
                    "last_synced_at": now,
                    "published_at": record.published_at if is_draft else now,
                    "published_by": principal.user_id,
                    "sync_metadata": record.metadata_with(
                        progress=progress,
                        last_error=None,
                        is_draft=is_draft,
                        site_published=site_published,
                        warning=warning or None,
                    ),
                },
            )
            if final is None:
                raise InvalidState(f"Publishing record {publishing_id} was changed while publishing")
        except WorkflowError as exc:
            exc.step = exc.step or step
            self._persist_failure(record, exc)
            raise
        except Exception as exc:
            failure = WorkflowError(str(exc) or exc.__class__.__name__, step=step, code="INTERNAL_ERROR")
            self._persist_failure(record, failure)
            raise

        logger.info("Published %s as item %s (site published: %s)", publishing_id, item_id, site_published)
        if final.queue_id and not is_draft:
            self._mark_queue_published(final)
        diagnostics = self._verify(adapter, item_id, integration.collection_id)

        return PublishResult(
            success=True,
            platform=final.platform,
            item_id=item_id,
            published=not is_draft,
            url=url,
            site_published=site_published,
            warning=warning,
            diagnostics=diagnostics,
        )

    # ------------------------------------------------------------------
    # Unpublish / delete / cancel
    # ------------------------------------------------------------------

    def unpublish(self, principal: Principal, publishing_id: str, publish_site: bool = True) -> PlatformPublishingRecord:
        """Turn the remote item back into a draft, keeping its content."""
        authorize(principal, Operation.UNPUBLISH)
        record = self.get_record(principal, publishing_id)
        if record.status != PlatformStatus.PUBLISHED:
            raise InvalidState(f"Only published records can be unpublished (current: {record.status.value})")
        if not record.platform_post_id:
            raise PreconditionFailed("No platform item to unpublish", step=STEP_UNPUBLISH)
        ensure_transition("platform", record.status, PlatformStatus.UNPUBLISHED)

        integration = self._integration(record)
        adapter = self.adapter_factory(record.platform, integration.config)
        try:
            adapter.unpublish_item(integration.collection_id, record.platform_post_id)
        except WorkflowError as exc:
            exc.step = exc.step or STEP_UNPUBLISH
            self._record_sync_error(record, exc)
            raise

        site_published = False
        if publish_site:
            site_published, _ = self._publish_site(adapter, integration, {})

        updated = self.store.compare_and_set_publishing(
            publishing_id,
            [PlatformStatus.PUBLISHED],
            {
                "status": PlatformStatus.UNPUBLISHED,
                "sync_status": SyncStatus.SYNCED,
                "last_synced_at": utc_now(),
                "sync_metadata": {
                    **record.metadata_with_history(
                        "unpublished",
                        unpublished_by=principal.user_id,
                        site_published=site_published,
                    ),
                    # the item is a draft now, so the next publish must update it
                    "progress": {},
                },
            },
        )
        if updated is None:
            raise InvalidState(f"Publishing record {publishing_id} changed status during unpublish")
        logger.info("Unpublished %s (item %s)", publishing_id, record.platform_post_id)
        return updated

    def delete_from_platform(
        self,
        principal: Principal,
        publishing_id: str,
        publish_site: bool = True,
    ) -> DeleteOutcome:
        """Delete the remote item and reset the record to pending."""
        return self._delete(principal, publishing_id, keep_record=True, publish_site=publish_site)

    def delete_and_forget(
        self,
        principal: Principal,
        publishing_id: str,
        publish_site: bool = True,
    ) -> DeleteOutcome:
        """Delete the remote item and the local record."""
        return self._delete(principal, publishing_id, keep_record=False, publish_site=publish_site)

    def _delete(
        self,
        principal: Principal,
        publishing_id: str,
        keep_record: bool,
        publish_site: bool,
    ) -> DeleteOutcome:
        authorize(principal, Operation.DELETE)
        record = self.get_record(principal, publishing_id)
        if not record.platform_post_id:
            raise PreconditionFailed(
                "Record has no platform item to delete",
                step=STEP_DELETE,
                details={"publishing_id": publishing_id},
            )
        if record.status == PlatformStatus.PUBLISHING:
            raise InvalidState(f"Publishing record {publishing_id} is being published")
        if keep_record and record.status != PlatformStatus.PENDING:
            ensure_transition("platform", record.status, PlatformStatus.PENDING)

        integration = self._integration(record)
        adapter = self.adapter_factory(record.platform, integration.config)
        item_id = record.platform_post_id
        try:
            deleted = adapter.delete_item(integration.collection_id, item_id)
        except WorkflowError as exc:
            exc.step = exc.step or STEP_DELETE
            self._record_sync_error(record, exc)
            raise

        site_published = False
        if publish_site:
            site_published, _ = self._publish_site(adapter, integration, {})

        if not keep_record:
            self.store.delete_publishing(publishing_id)
            logger.info("Deleted item %s and publishing record %s", item_id, publishing_id)
            return DeleteOutcome(item_id, deleted.deleted, site_published, record_deleted=True)

        meta = record.metadata_with_history(
            "deleted_from_platform",
            deleted_by=principal.user_id,
            previous_item_id=item_id,
        )
        meta.update(
            deleted_from_platform_at=utc_now(),
            deleted_by=principal.user_id,
            previous_item_id=item_id,
            progress={},
            last_error=None,
        )
        updated = self.store.compare_and_set_publishing(
            publishing_id,
            [record.status],
            {
                "status": PlatformStatus.PENDING,
                "platform_post_id": None,
                "platform_url": None,
                "sync_status": SyncStatus.NOT_SYNCED,
                "error_code": None,
                "error_message": None,
                "published_at": None,
                "sync_metadata": meta,
            },
        )
        if updated is None:
            logger.error("Item %s deleted but record %s changed concurrently", item_id, publishing_id)
            raise InvalidState(f"Publishing record {publishing_id} changed status during delete")
        logger.info("Deleted item %s; record %s reset to pending", item_id, publishing_id)
        return DeleteOutcome(item_id, deleted.deleted, site_published, record_deleted=False, record=updated)

    def cancel(self, principal: Principal, publishing_id: str) -> PlatformPublishingRecord:
        """Cancel a record that has not started publishing."""
        authorize(principal, Operation.CANCEL)
        record = self.get_record(principal, publishing_id)
        if record.status != PlatformStatus.PENDING:
            raise InvalidState(f"Only pending records can be cancelled (current: {record.status.value})")
        updated = self.store.compare_and_set_publishing(
            publishing_id,
            [PlatformStatus.PENDING],
            {
                "status": PlatformStatus.CANCELLED,
                "sync_metadata": record.metadata_with_history("cancelled", cancelled_by=principal.user_id),
            },
        )
        if updated is None:
            raise InvalidState(f"Publishing record {publishing_id} is no longer pending")
        logger.info("Cancelled %s", publishing_id)
        return updated

    # ------------------------------------------------------------------
    # Recovery
    # ------------------------------------------------------------------

    def recover_interrupted(
        self,
        principal: Principal,
        publishing_id: Optional[str] = None,
        stale_after_seconds: float | None = None,
    ) -> list[PlatformPublishingRecord]:
        """Fail records stuck in ``publishing`` past the staleness window."""
        authorize(principal, Operation.RECOVER)
        if stale_after_seconds is None:
            stale_after_seconds = settings.workflow.stale_publishing_minutes * 60
        cutoff = utc_now(-stale_after_seconds)

        if publishing_id:
            record = self.get_record(principal, publishing_id)
            stuck = [record] if record.status == PlatformStatus.PUBLISHING and record.updated_at < cutoff else []
        else:
            stuck = self.store.list_publishing(principal.org_id, PlatformStatus.PUBLISHING, updated_before=cutoff)

        recovered = []
        for record in stuck:
            step = record.progress.get("current_step") or STEP_CREATE
            error = WorkflowError(
                f"Publish interrupted during {step}; retry to resume",
                code=INTERRUPTED,
                step=step,
            )
            failed = self._persist_failure(record, error)
            if failed is not None:
                recovered.append(failed)
        return recovered

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def validate_links(
        self,
        org_id: str,
        content: str,
        integration: Integration,
        strict_mode: bool,
    ) -> LinkValidationResult:
        index = ContentIndex(self.store.list_content_index(org_id))
        return LinkValidator(index).validate_links(
            content,
            integration.site_id,
            integration.site_url or None,
            strict_mode=strict_mode,
        )

    def _integration(self, record: PlatformPublishingRecord) -> Integration:
        integration = self.store.get_integration(record.org_id, record.platform)
        if integration is None or not integration.is_active:
            raise PreconditionFailed(f"No active {record.platform.value} integration for this organization")
        missing = integration.missing_config()
        if missing:
            raise PreconditionFailed(
                f"{record.platform.value} integration is missing: {', '.join(missing)}",
                details={"missing": missing},
            )
        return integration

    def _post(self, record: PlatformPublishingRecord) -> Post:
        post = self.store.get_post(record.org_id, record.post_id)
        if post is None:
            raise PreconditionFailed(f"Post {record.post_id} not found")
        return post

    def _save_progress(
        self,
        record: PlatformPublishingRecord,
        progress: dict[str, Any],
        **fields: Any,
    ) -> PlatformPublishingRecord:
        updated = self.store.compare_and_set_publishing(
            record.publishing_id,
            [PlatformStatus.PUBLISHING],
            {"sync_metadata": record.metadata_with(progress=progress), **fields},
        )
        if updated is None:
            raise InvalidState(f"Publishing record {record.publishing_id} was changed while publishing")
        return updated

    def _publish_site(
        self,
        adapter: PlatformAdapter,
        integration: Integration,
        progress: dict[str, Any],
    ) -> tuple[bool, str]:
        """Best-effort site publish. Returns (published, warning)."""
        try:
            adapter.publish_site(integration.site_id)
        except Exception as exc:
            if isinstance(exc, WorkflowError):
                failure = exc
                failure.step = failure.step or STEP_PUBLISH_SITE
            else:
                failure = UpstreamError(str(exc) or exc.__class__.__name__, step=STEP_PUBLISH_SITE)
            logger.warning("Site publish failed for site %s: %s", integration.site_id, failure.message)
            progress[STEP_PUBLISH_SITE] = {"status": "failed", "at": utc_now(), "error": failure.to_dict()}
            return False, f"Item saved but site publish failed: {failure.message}"
        progress[STEP_PUBLISH_SITE] = {"status": "done", "at": utc_now()}
        return True, ""

    def _persist_failure(
        self,
        record: PlatformPublishingRecord,
        exc: WorkflowError,
    ) -> Optional[PlatformPublishingRecord]:
        current = self.store.get_publishing(record.org_id, record.publishing_id) or record
        progress = {**current.progress, "failed_step": exc.step}
        meta = current.metadata_with(
            progress=progress,
            last_error={"code": exc.code, "message": exc.message, "step": exc.step, "at": utc_now()},
        )
        updates: dict[str, Any] = {
            "status": PlatformStatus.FAILED,
            "sync_status": SyncStatus.SYNC_FAILED,
            "error_code": exc.code,
            "error_message": exc.message,
        }
        if isinstance(exc, RemoteItemMissing):
            meta = {**meta, "previous_item_id": current.platform_post_id}
            updates.update(platform_post_id=None, platform_url=None)
            meta["progress"].pop("item", None)
        updates["sync_metadata"] = meta

        failed = self.store.compare_and_set_publishing(record.publishing_id, [PlatformStatus.PUBLISHING], updates)
        if failed is None:
            logger.error("Could not record failure for %s: status changed", record.publishing_id)
        else:
            logger.error(
                "Publish %s failed at step %s: [%s] %s",
                record.publishing_id,
                exc.step,
                exc.code,
                exc.message,
            )
        return failed

    def _record_sync_error(self, record: PlatformPublishingRecord, exc: WorkflowError) -> None:
        """Note a failed remote operation without changing the record's status."""
        self.store.compare_and_set_publishing(
            record.publishing_id,
            [record.status],
            {
                "sync_status": SyncStatus.SYNC_FAILED,
                "error_code": exc.code,
                "error_message": f"{exc.step} failed: {exc.message}",
                "sync_metadata": record.metadata_with(
                    last_error={"code": exc.code, "message": exc.message, "step": exc.step, "at": utc_now()},
                ),
            },
        )
        logger.error("%s failed for %s: %s", exc.step, record.publishing_id, exc.message)

    def _mark_queue_published(self, record: PlatformPublishingRecord) -> None:
        try:
            self.queue.mark_published(record.org_id, record.queue_id)
        except WorkflowError as exc:
            logger.warning("Queue item %s not marked published: %s", record.queue_id, exc.message)

    def _verify(self, adapter: PlatformAdapter, item_id: str, collection_id: str):
        try:
            diagnostics = adapter.verify_item(item_id, collection_id)
        except WorkflowError as exc:
            logger.warning("Post-publish check of item %s failed: %s", item_id, exc.message)
            return None
        except Exception as exc:
            logger.warning("Post-publish check of item %s failed: %s", item_id, exc)
            return None
        if not diagnostics.exists:
            logger.warning("Item %s not found right after publishing", item_id)
        return diagnostics


def respond(action: Callable[[], Any]) -> tuple[int, dict[str, Any]]:
    """Run an orchestrator call and shape the outcome for an HTTP-style caller."""
    try:
        outcome = action()
    except WorkflowError as exc:
        return error_response(exc)
    except Exception as exc:
        logger.exception("Unexpected error: %s", exc)
        return error_response(exc)
    if hasattr(outcome, "to_response"):
        return 200, outcome.to_response()
    if hasattr(outcome, "to_row"):
        return 200, {"success": True, "result": outcome.to_row()}
    if isinstance(outcome, list):
        return 200, {"success": True, "result": [getattr(o, "to_row", lambda o=o: o)() for o in outcome]}
    return 200, {"success": True, "result": outcome}
