# llm_cloud/tools/handlers.py
"""
Handlers for the capability tools and tool registration logic.

This module centralizes the tool handlers that expose the capability backends
(document analysis, image analysis, policy e-mail) to the LLM. Each handler is a
thin adapter: it reads the model-supplied arguments, delegates to the injected
backend (for example `capabilities.documents.analyze_document`), and formats the
result as deterministic text the model can relay to the user. Each tool also has
an apology formatter used by the `ToolExecutor` when the file cannot be resolved
or the backend fails. The `register_all_tools` function wires everything into the
shared `ToolManager`.
"""

import logging
from typing import Any, Dict, Optional

from capabilities.base import CapabilityClients, DeliveryError, DeliveryErrorCode, PolicyNotice
from shared.models import ClassifiedError, StagedFile

logger = logging.getLogger(__name__)

from .core import Tool, ToolManager

EMAIL_FIELDS = ("email_address", "first_name", "last_name", "policy_number", "vin")

# ---------------------------------------------------------------------------
# Document analysis ----------------------------------------------------------
# ---------------------------------------------------------------------------

def _analyze_pdf_handler(args: Dict[str, Any], staged_file: StagedFile, capabilities: CapabilityClients) -> str:
    """Analyze an uploaded PDF and report the analysis with page and character counts.

    Args:
        args (Dict[str, Any]): "file_path" (str, resolved by the executor) and optional "prompt" (str).
        staged_file (StagedFile): The resolved upload.
        capabilities (CapabilityClients): Injected capability backends.

    Returns:
        str: Analysis text followed by document details.
    """
    prompt = args.get("prompt")
    logger.info(
        f"[_analyze_pdf_handler] file={staged_file.filename}, size={staged_file.size}, "
        f"prompt={'custom' if prompt else 'default recap'}\n"
    )
    analysis = capabilities.documents.analyze_document(staged_file.content, staged_file.media_type, prompt)
    return (
        f"PDF Analysis Results:\n{analysis.text}\n\n"
        f"Document Details:\n"
        f"- File: {staged_file.filename}\n"
        f"- Pages: {analysis.page_count}\n"
        f"- Characters extracted: {analysis.extracted_chars}\n"
        f"- Analysis completed successfully"
    )


def _pdf_not_found(path: str) -> str:
    return f"Sorry, I couldn't access the PDF file at '{path}'. Please ensure the file was uploaded correctly."


def _pdf_error(args: Dict[str, Any], staged_file: Optional[StagedFile], exc: Exception,
               classified: ClassifiedError) -> str:
    filename = staged_file.filename if staged_file else args.get("file_path", "the document")
    return f"Sorry, I couldn't analyze the PDF '{filename}'. {classified.message}"

# ---------------------------------------------------------------------------
# Image analysis -------------------------------------------------------------
# ---------------------------------------------------------------------------

def _analyze_image_handler(args: Dict[str, Any], staged_file: StagedFile, capabilities: CapabilityClients) -> str:
    """Analyze an uploaded image. Without a prompt the backend produces a general description."""
    logger.info(f"[_analyze_image_handler] file={staged_file.filename}, type={staged_file.media_type}\n")
    analysis = capabilities.images.analyze_image(staged_file.content, staged_file.media_type, args.get("prompt"))
    return (
        f"Image Analysis Results:\n{analysis.text}\n\n"
        f"Image Details:\n"
        f"- File: {staged_file.filename}\n"
        f"- Size: {staged_file.size} bytes\n"
        f"- Type: {staged_file.media_type}\n"
        f"- Analysis completed successfully"
    )


def _image_not_found(path: str) -> str:
    return f"Sorry, I couldn't access the image file at '{path}'. Please ensure the file was uploaded correctly."


def _image_error(args: Dict[str, Any], staged_file: Optional[StagedFile], exc: Exception,
                 classified: ClassifiedError) -> str:
    filename = staged_file.filename if staged_file else args.get("file_path", "the image")
    return f"Sorry, I couldn't analyze the image '{filename}'. {classified.message}"

# ---------------------------------------------------------------------------
# Policy e-mail --------------------------------------------------------------
# ---------------------------------------------------------------------------

def _send_policy_email_handler(args: Dict[str, Any], staged_file: None, capabilities: CapabilityClients) -> str:
    """Send the customer an e-mail with their policy details.

    Args:
        args (Dict[str, Any]): "email_address", "first_name", "last_name", "policy_number", "vin" (all str).

    Returns:
        str: Delivery confirmation with the provider message id, or a request for the missing fields.
    """
    values = {name: str(args.get(name) or "").strip() for name in EMAIL_FIELDS}
    missing = [name.replace("_", " ") for name, value in values.items() if not value]
    if missing:
        return f"I need the following information before I can send the policy email: {', '.join(missing)}."

    logger.info(
        f"[_send_policy_email_handler] recipient={values['email_address']}, policy={values['policy_number']}\n"
    )
    receipt = capabilities.notifier.send_notification(PolicyNotice(
        recipient=values["email_address"],
        first_name=values["first_name"],
        last_name=values["last_name"],
        policy_number=values["policy_number"],
        vin=values["vin"],
    ))
    return (
        f"Policy information email sent successfully!\n\n"
        f"Email Details:\n"
        f"- Recipient: {receipt.recipient} ({values['first_name']} {values['last_name']})\n"
        f"- Policy Number: {values['policy_number']}\n"
        f"- VIN: {values['vin']}\n"
        f"- Message ID: {receipt.delivery_id}\n"
        f"- Email delivery confirmed"
    )


def _send_policy_email_error(args: Dict[str, Any], staged_file: None, exc: Exception,
                             classified: ClassifiedError) -> str:
    recipient = args.get("email_address", "the recipient")
    code = exc.code if isinstance(exc, DeliveryError) else None
    if code == DeliveryErrorCode.INVALID_EMAIL:
        return (f"Sorry, the email address '{recipient}' appears to be invalid. "
                f"Please check the email address and try again.")
    if code == DeliveryErrorCode.PROVIDER_REJECTED:
        return (f"Sorry, I couldn't send the email to {recipient} due to a delivery issue. "
                f"This might be because the email address is not verified in our system.")
    if code == DeliveryErrorCode.AUTHENTICATION_FAILED:
        return ("Sorry, there was an authentication issue with our email service. "
                "Please try again later or contact support.")
    if code == DeliveryErrorCode.RATE_LIMITED:
        return (f"Sorry, our email service is busy right now, so I couldn't send the email to {recipient}. "
                f"Please try again in a few minutes.")
    return (f"Sorry, I encountered an unexpected error while sending the email to {recipient}. "
            f"Please try again later.")

# ---------------------------------------------------------------------------
# Registration logic, to be called from __init__.py
# ---------------------------------------------------------------------------

def register_all_tools(tool_manager: ToolManager) -> None:
    """Registers all tools defined in this file with the provided ToolManager."""
    tool_manager.register(
        Tool(
            name="analyze_pdf",
            handler=_analyze_pdf_handler,
            description=(
                "Analyze a PDF document the user uploaded and extract information from it, such as a summary, "
                "VIN numbers, contact details or financial data. Use the file path listed in the user's message."
            ),
            parameters={
                "type": "object",
                "properties": {
                    "file_path": {"type": "string", "description": (
                        "Path of the uploaded PDF, exactly as listed in the message, e.g. "
                        "'/uploaded/<conversationId>/report.pdf'."
                    )},
                    "prompt": {"type": "string", "description": (
                        "Optional instruction for what to look for. Omit it for a general recap of the document."
                    )},
                },
                "required": ["file_path"],
            },
            file_parameter="file_path",
            not_found_formatter=_pdf_not_found,
            error_formatter=_pdf_error,
        )
    )

    tool_manager.register(
        Tool(
            name="analyze_image",
            handler=_analyze_image_handler,
            description=(
                "Analyze an image the user uploaded (JPEG, PNG, GIF or WEBP), for example a photo of a vehicle, "
                "damage, or a document. Use the file path listed in the user's message."
            ),
            parameters={
                "type": "object",
                "properties": {
                    "file_path": {"type": "string", "description": (
                        "Path of the uploaded image, exactly as listed in the message."
                    )},
                    "prompt": {"type": "string", "description": (
                        "Optional question about the image. Omit it for a general description."
                    )},
                },
                "required": ["file_path"],
            },
            file_parameter="file_path",
            not_found_formatter=_image_not_found,
            error_formatter=_image_error,
        )
    )

    tool_manager.register(
        Tool(
            name="send_policy_email",
            handler=_send_policy_email_handler,
            description=(
                "Send policy information email to a customer with their policy and vehicle details. "
                "All parameters are required."
            ),
            parameters={
                "type": "object",
                "properties": {
                    "email_address": {"type": "string", "description": "Recipient's email address."},
                    "first_name": {"type": "string", "description": "Customer's first name."},
                    "last_name": {"type": "string", "description": "Customer's last name."},
                    "policy_number": {"type": "string", "description": "Insurance policy number."},
                    "vin": {"type": "string", "description": "Vehicle identification number."},
                },
                "required": list(EMAIL_FIELDS),
            },
            error_formatter=_send_policy_email_error,
        )
    )

    logger.info(f"[register_all_tools] Registered tools: {', '.join(tool_manager.names())}\n")
