# UTF-8 probe: emoji, several scripts, symbols.
print("=== Unicode Test ===")
print("Emojis: 🎉 🚀 ✨ 💻 🔥")
print("Japanese: こんにちは世界")
print("Arabic: مرحبا بالعالم")
print("Russian: Привет мир")
print("Chinese: 你好世界")
print("Symbols: © ® ™ € £ ¥ ∞ ≈ ≠")
print("Math: π ≈ 3.14159, √2 ≈ 1.414, ∑ ∫ ∂")
