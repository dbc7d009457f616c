"""Math-solver backend streaming Gemini answers over Server-Sent Events."""
