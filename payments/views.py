import json
import logging
import uuid

import stripe
from django.conf import settings
from django.contrib import messages
from django.http import HttpResponse, HttpResponseBadRequest, JsonResponse
from django.shortcuts import render, redirect, get_object_or_404
from django.urls import reverse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from registrations.models import Registration
from .models import StripeEvent
from .services import EVENT_HANDLERS, PaymentError, create_checkout_session, verify_session

logger = logging.getLogger(__name__)


def _registration_by_reference(value):
    try:
        ref = uuid.UUID(str(value))
    except (TypeError, ValueError):
        return None
    return Registration.objects.filter(reference=ref).first()


@csrf_exempt
@require_POST
def checkout_api(request):
    """POST JSON: {"reference": "<registration uuid>"} -> {"success": true, "url": "<stripe checkout>"}"""
    try:
        data = json.loads(request.body.decode("utf-8") or "{}")
    except (ValueError, UnicodeDecodeError):
        data = None
    if not isinstance(data, dict):
        return JsonResponse({"success": False, "message": "Invalid request data"}, status=400)
    reg = _registration_by_reference(data.get("reference"))
    if reg is None:
        return JsonResponse({"success": False, "message": "Registration not found"}, status=404)
    try:
        session = create_checkout_session(reg)
    except PaymentError as e:
        return JsonResponse({"success": False, "message": str(e)}, status=400)
    except stripe.StripeError:
        logger.exception("Stripe session create failed for registration %s", reg.pk)
        return JsonResponse({"success": False, "message": "Payment provider unavailable. Please try again."}, status=502)
    return JsonResponse({"success": True, "session_id": session.id, "url": session.url})


def payment_resume(request, reference):
    """Link from the payment-required email: send the customer to a fresh checkout."""
    reg = get_object_or_404(Registration, reference=reference)
    if reg.status == "COMPLETED":
        return redirect(reverse("ticket_status_page") + f"?email={reg.email}")
    try:
        session = create_checkout_session(reg)
    except PaymentError as e:
        messages.error(request, str(e))
        return redirect("book")
    except stripe.StripeError:
        logger.exception("Stripe session create failed for registration %s", reg.pk)
        messages.error(request, "Payment provider unavailable. Please try again shortly.")
        return redirect("book")
    return redirect(session.url, permanent=False)


@csrf_exempt
def stripe_webhook(request):
    payload = request.body
    sig_header = request.META.get("HTTP_STRIPE_SIGNATURE", "")
    try:
        event = stripe.Webhook.construct_event(payload=payload, sig_header=sig_header,
                                               secret=settings.STRIPE_WEBHOOK_SECRET)
    except (ValueError, stripe.SignatureVerificationError):
        return HttpResponseBadRequest("invalid signature")

    # Idempotency
    _, created = StripeEvent.objects.get_or_create(event_id=event["id"], defaults={"type": event["type"]})
    if not created:
        return HttpResponse(status=200)

    handler = EVENT_HANDLERS.get(event["type"])
    if handler:
        try:
            handler(event["data"]["object"])
        except Exception:
            # forget the event so Stripe's retry gets processed
            StripeEvent.objects.filter(event_id=event["id"]).delete()
            logger.exception("Stripe event %s (%s) failed", event["id"], event["type"])
            raise
    return HttpResponse(status=200)


def payment_verify(request):
    session_id = request.GET.get("session_id") or ""
    if not session_id:
        return JsonResponse({"success": False, "message": "Session ID is required"}, status=400)
    try:
        data = verify_session(session_id)
    except PaymentError as e:
        return JsonResponse({"success": False, "message": str(e)}, status=404)
    except stripe.StripeError:
        logger.exception("Stripe session lookup failed for %s", session_id)
        return JsonResponse({"success": False, "message": "Unable to verify payment"}, status=502)
    return JsonResponse({"success": True, "data": data})


def payment_success(request):
    session_id = request.GET.get("session_id") or ""
    data = None
    if session_id:
        try:
            data = verify_session(session_id)
        except (PaymentError, stripe.StripeError):
            logger.exception("Could not verify session %s on success page", session_id)
    return render(request, "payments/success.html", {"data": data})


def payment_cancelled(request):
    reg = _registration_by_reference(request.GET.get("reference"))
    return render(request, "payments/cancelled.html", {"registration": reg})
