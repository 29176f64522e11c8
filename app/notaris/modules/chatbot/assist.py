"""
AI helpers for staff work outside the chatbot: document drafting and review,
and suggested replies in the messaging inbox.
"""
from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any

from app.notaris.modules.chatbot.providers import AIProviderError, ChatCompletionClient, get_ai_settings, reply_text
from app.notaris.modules.chatbot.service import record_ai_usage
from app.notaris.utils import clean_str

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.notaris.models import User
    from app.notaris.modules.messaging.models import Conversation

DOCUMENT_ACTIONS = ("generate", "analyze", "correct", "revise", "summarize", "translate", "letter")
CONTENT_ACTIONS = ("analyze", "correct", "revise", "summarize", "translate")

BASE_PROMPT = """Kamu adalah asisten notaris profesional Indonesia yang ahli dalam membuat dan menganalisis dokumen hukum.
Kamu menulis dalam Bahasa Indonesia yang formal dan sesuai dengan standar hukum Indonesia.
Selalu gunakan format yang benar untuk dokumen notaris termasuk nomor akta, tanggal, identitas pihak, dan pasal-pasal.

KEPATUHAN UU PDP (UU No. 27 Tahun 2022):
- JANGAN menyimpan atau menampilkan data biometrik
- Minimasi data: hanya gunakan data yang diperlukan untuk tugas ini
- Semua data bersifat rahasia dan hanya untuk keperluan pembuatan dokumen
- JANGAN membuat asumsi tentang data pribadi yang tidak diberikan"""

ACTION_PROMPTS = {
    "generate": """TUGAS: Buatkan draft dokumen notaris lengkap dalam format HTML.
ATURAN:
- Gunakan format HTML yang bersih dengan tag <h1>, <h2>, <p>, <ol>, <ul>, <table>
- Sertakan header dokumen dengan nomor akta, tanggal, dan tempat
- Sertakan identitas pihak-pihak yang terlibat (gunakan placeholder [NAMA], [ALAMAT], dll.)
- Sertakan pasal-pasal yang relevan sesuai jenis dokumen
- Sertakan bagian penutup dan tanda tangan
- Format harus siap cetak di kertas A4
- JANGAN gunakan markdown, HANYA HTML""",
    "analyze": """TUGAS: Analisis dokumen notaris yang diberikan.
BERIKAN:
1. Ringkasan - Ringkasan singkat isi dokumen
2. Kelengkapan - Apakah semua elemen hukum yang diperlukan sudah ada
3. Potensi Masalah - Identifikasi kelemahan atau masalah potensial
4. Saran Perbaikan - Rekomendasi spesifik untuk perbaikan
5. Kesesuaian Hukum - Apakah sesuai dengan peraturan yang berlaku

Format jawaban dalam HTML dengan heading dan list yang rapi.""",
    "correct": """TUGAS: Perbaiki dokumen notaris berikut.
YANG HARUS DIPERBAIKI:
- Kesalahan ketik (typo)
- Kesalahan tata bahasa Indonesia
- Format penulisan hukum yang tidak standar
- Konsistensi istilah hukum
- Penomoran yang tidak urut
- Format tanggal, mata uang, dan angka

KEMBALIKAN dokumen yang sudah diperbaiki dalam format HTML yang sama.
JANGAN mengubah substansi dokumen, hanya perbaiki format dan bahasa.
Berikan output HTML langsung tanpa penjelasan tambahan.""",
    "revise": """TUGAS: Revisi dokumen notaris berdasarkan instruksi yang diberikan.
ATURAN:
- Ikuti instruksi revisi dengan tepat
- Pertahankan format HTML yang ada
- Pastikan hasil revisi tetap konsisten secara hukum
- Jika instruksi tidak jelas, tetap pertahankan versi yang aman secara hukum

Kembalikan dokumen yang sudah direvisi dalam format HTML.
Berikan output HTML langsung tanpa penjelasan lain.""",
    "summarize": """TUGAS: Buatkan ringkasan dokumen notaris yang diberikan.
ATURAN:
- Ringkasan harus mencakup poin-poin utama dokumen
- Sebutkan pihak-pihak yang terlibat
- Sebutkan objek/hal yang diperjanjikan
- Sebutkan ketentuan-ketentuan penting
- Sebutkan tanggal dan nilai penting jika ada
- Maksimal 5-8 poin utama
- Format dalam HTML dengan heading dan bullet list yang rapi
- Tulis ringkasan yang bisa dipahami orang awam""",
    "letter": """TUGAS: Buatkan surat resmi notaris dalam format HTML.
ATURAN:
- Gunakan format surat resmi Indonesia (kop surat, nomor surat, perihal, lampiran)
- Bahasa Indonesia yang formal dan sopan
- Sertakan tempat untuk tanda tangan dan stempel
- Format siap cetak A4
- Gunakan placeholder [NAMA_NOTARIS], [ALAMAT_KANTOR], [NOMOR_SURAT] jika belum diketahui
- JANGAN gunakan markdown, HANYA HTML""",
}

# translation is the only prompt written in English
TRANSLATE_PROMPT = """You are a professional legal translator specializing in Indonesian notarial documents.

TASK: Translate the given Indonesian notarial document to English.
RULES:
- Maintain the exact same HTML structure and formatting
- Use proper English legal terminology
- Keep proper nouns (names, places, addresses) in their original form
- Keep Indonesian legal terms that have no direct English equivalent in brackets, e.g. [Akta Jual Beli]
- Preserve all numbering, dates, and monetary values
- Add "[Unofficial Translation]" watermark at the top
- Output HTML directly without any explanation"""

COMPARE_PROMPT = """Kamu adalah asisten hukum notaris yang ahli membandingkan dokumen.
Tugasmu adalah membandingkan VERSI LAMA dan VERSI BARU dari sebuah dokumen, lalu berikan:

1. Ringkasan Perubahan - Daftar perubahan utama yang terjadi
2. Pasal yang Berubah - Pasal/bagian mana yang diubah, ditambah, atau dihapus
3. Implikasi Hukum - Apakah perubahan ini memiliki implikasi hukum yang perlu diperhatikan
4. Rekomendasi - Apakah perubahan ini aman dan sesuai standar

Format jawaban dalam HTML yang rapi dengan heading, list, dan highlight untuk perubahan penting.
Gunakan warna: hijau untuk penambahan, merah untuk penghapusan, kuning untuk perubahan."""

DRAFT_REPLY_PROMPT = """Kamu adalah asisten staff notaris yang profesional dan ramah. Tugasmu membantu draft balasan pesan ke klien.
Balas dalam Bahasa Indonesia yang sopan dan profesional.
Jawab sesuai konteks percakapan.
Berikan jawaban yang ringkas dan membantu.
JANGAN menggunakan format markdown. Tulis plain text biasa."""


def validate_document_request(payload: dict) -> list[str]:
    errors = []
    action = payload.get("action")
    if action not in DOCUMENT_ACTIONS:
        errors.append(f"Invalid action. Must be one of: {', '.join(DOCUMENT_ACTIONS)}")
        return errors
    if not clean_str(payload.get("document_type")):
        errors.append("document_type is required.")
    if not clean_str(payload.get("title")):
        errors.append("Title is required.")
    if action in CONTENT_ACTIONS and not clean_str(payload.get("content")):
        errors.append(f"Content is required for {action}.")
    if action == "revise" and not clean_str(payload.get("instruction")):
        errors.append("Instruction is required for revise.")
    return errors


def document_system_prompt(action: str) -> str:
    if action == "translate":
        return TRANSLATE_PROMPT
    return f"{BASE_PROMPT}\n\n{ACTION_PROMPTS[action]}"


def _optional_lines(*pairs: tuple[str, Any]) -> str:
    return "\n".join(f"{label}: {value}" for label, value in pairs if value)


def document_user_prompt(payload: dict) -> str:
    action = payload["action"]
    doc_type = payload.get("document_type")
    title = payload.get("title")
    content = payload.get("content") or "(kosong)"
    header = f"Jenis: {doc_type}\nJudul: {title}\n\nISI DOKUMEN:\n{content}"

    if action == "generate":
        extra = _optional_lines(
            ("Nama klien", payload.get("client_name")),
            ("Alamat klien", payload.get("client_address")),
            ("Konteks tambahan", payload.get("additional_context")),
        )
        return f'Buatkan draft dokumen "{doc_type}" dengan judul: "{title}".\n\n{extra}\n\nBuatkan dokumen lengkap dalam format HTML.'
    if action == "analyze":
        return f"Analisis dokumen berikut:\n\n{header}"
    if action == "correct":
        return f"Perbaiki dokumen berikut:\n\n{header}"
    if action == "revise":
        return f"Revisi dokumen berikut sesuai instruksi:\n\nINSTRUKSI REVISI: {payload.get('instruction')}\n\n{header}"
    if action == "summarize":
        return f"Buatkan ringkasan dari dokumen berikut:\n\n{header}"
    if action == "translate":
        language = payload.get("target_language") or "English"
        return (
            f"Translate the following Indonesian notarial document to {language}:\n\n"
            f"Document Type: {doc_type}\nTitle: {title}\n\nDOCUMENT CONTENT:\n{payload.get('content') or '(empty)'}"
        )
    extra = _optional_lines(
        ("Ditujukan kepada", payload.get("client_name")),
        ("Alamat", payload.get("client_address")),
        ("Detail tambahan", payload.get("additional_context")),
    )
    return (
        "Buatkan surat resmi notaris dengan detail berikut:\n\n"
        f"Jenis Surat: {payload.get('letter_type') or 'Surat Pemberitahuan'}\nPerihal: {title}\n{extra}\n\n"
        "Buatkan surat lengkap dalam format HTML."
    )


def run_document_action(s: "Session", payload: dict, user: "User", *, timeout_seconds: int = 60) -> dict[str, Any]:
    """Call validate_document_request() first. Raises AINotConfigured/AIProviderError."""
    started = time.monotonic()
    action = payload["action"]
    client = ChatCompletionClient.from_settings(get_ai_settings(s), timeout_seconds=timeout_seconds)
    data = client.complete(
        [
            {"role": "system", "content": document_system_prompt(action)},
            {"role": "user", "content": document_user_prompt(payload)},
        ],
        max_tokens=8192,
        temperature=0.2 if action == "correct" else 0.7,
    )
    content = reply_text(data)
    if not content:
        raise AIProviderError("AI returned an empty response.")
    duration_ms = int((time.monotonic() - started) * 1000)
    record_ai_usage(s, user, f"document_{action}", client.provider_id, client.model_id, data, document_id=payload.get("document_id"), duration_ms=duration_ms)
    return {"content": content, "duration_ms": duration_ms}


def draft_reply(
    s: "Session",
    conversation: "Conversation",
    recent_messages: list[dict[str, Any]],
    user: "User",
    *,
    timeout_seconds: int = 60,
) -> str:
    client = ChatCompletionClient.from_settings(get_ai_settings(s), timeout_seconds=timeout_seconds)
    system = DRAFT_REPLY_PROMPT
    doc = conversation.document
    if doc is not None:
        type_name = doc.document_type.name if doc.document_type else "-"
        system += f'\nKonteks: Percakapan ini terkait dokumen "{doc.title}" ({type_name}), status: {doc.status}.'
    history = "\n".join(f"{m.get('sender')}: {m.get('content')}" for m in recent_messages[-10:])
    data = client.complete(
        [
            {"role": "system", "content": system},
            {
                "role": "user",
                "content": f"Berikut riwayat percakapan terakhir:\n\n{history}\n\nBuatkan draft balasan yang profesional untuk pesan terakhir klien.",
            },
        ],
        max_tokens=500,
        temperature=0.7,
    )
    draft = reply_text(data) or ""
    record_ai_usage(s, user, "message_draft", client.provider_id, client.model_id, data, conversation_id=conversation.id)
    return draft


def validate_compare_request(payload: dict) -> list[str]:
    if not clean_str(payload.get("original_content")) or not clean_str(payload.get("revised_content")):
        return ["Both original_content and revised_content are required."]
    return []


def compare_user_prompt(payload: dict) -> str:
    title = clean_str(payload.get("title")) or "Dokumen"
    doc_type = clean_str(payload.get("document_type")) or "umum"
    return (
        f'Bandingkan kedua versi dokumen "{title}" ({doc_type}) berikut:\n\n'
        f"=== VERSI LAMA ===\n{payload.get('original_content')}\n\n"
        f"=== VERSI BARU ===\n{payload.get('revised_content')}\n\n"
        "Berikan analisis perbandingan yang detail."
    )


def compare_documents(s: "Session", payload: dict, user: "User", *, timeout_seconds: int = 60) -> dict[str, Any]:
    """Change summary, changed clauses, legal implications and a recommendation, as HTML."""
    started = time.monotonic()
    client = ChatCompletionClient.from_settings(get_ai_settings(s), timeout_seconds=timeout_seconds)
    data = client.complete(
        [
            {"role": "system", "content": COMPARE_PROMPT},
            {"role": "user", "content": compare_user_prompt(payload)},
        ],
        max_tokens=4096,
        temperature=0.3,
    )
    comparison = reply_text(data)
    if not comparison:
        raise AIProviderError("AI returned an empty response.")
    duration_ms = int((time.monotonic() - started) * 1000)
    record_ai_usage(
        s,
        user,
        "document_compare",
        client.provider_id,
        client.model_id,
        data,
        document_id=payload.get("document_id"),
        title=clean_str(payload.get("title")),
        duration_ms=duration_ms,
    )
    return {"comparison": comparison, "duration_ms": duration_ms}
